"""
Evaluation of DWARF location expressions.

Only what is needed to find a fixed memory address is supported: object and
frame context are zero and DW_OP_addr values are taken as-is, since embedded
targets are not relocated at run time. Anything else is reported as
unsupported so the caller can drop the attribute.
"""
from typing import List

ADDRESS_OPS = ('DW_OP_addr', 'DW_OP_addrx', 'DW_OP_GNU_addr_index', 'DW_OP_constx',
               'DW_OP_GNU_const_index')

_CONST_OPS = (
    'DW_OP_const1u', 'DW_OP_const1s', 'DW_OP_const2u', 'DW_OP_const2s',
    'DW_OP_const4u', 'DW_OP_const4s', 'DW_OP_const8u', 'DW_OP_const8s',
    'DW_OP_constu', 'DW_OP_consts',
)

_BINARY_OPS = {
    'DW_OP_plus': lambda a, b: a + b,
    'DW_OP_minus': lambda a, b: a - b,
    'DW_OP_mul': lambda a, b: a * b,
    'DW_OP_and': lambda a, b: a & b,
    'DW_OP_or': lambda a, b: a | b,
    'DW_OP_xor': lambda a, b: a ^ b,
    'DW_OP_shl': lambda a, b: a << b,
    'DW_OP_shr': lambda a, b: a >> b,
}


class UnsupportedExpression(Exception):
    """The expression does not evaluate to a single fixed address."""


def is_address_bearing(ops) -> bool:
    """Does the expression mention a target address at all?"""
    return any(op.op_name in ADDRESS_OPS for op in ops)


def evaluate_location(ops, address_size: int = 4, max_iterations: int = 100) -> int:
    """
    Evaluate a parsed location expression to a memory address.

    Args:
        ops: Operations as returned by elftools' DWARFExprParser.parse_expr
        address_size: Width of the generic type in bytes
        max_iterations: Upper bound on evaluated operations

    Returns:
        int: The address the expression designates

    Raises:
        UnsupportedExpression: for register, implicit, composite or
            context dependent locations
    """
    if not ops:
        raise UnsupportedExpression("empty expression")
    if len(ops) > max_iterations:
        raise UnsupportedExpression(f"more than {max_iterations} operations")

    mask = (1 << (8 * address_size)) - 1
    # initial value pushed by the consumer
    stack: List[int] = [0]

    def pop():
        if not stack:
            raise UnsupportedExpression("stack underflow")
        return stack.pop()

    for op in ops:
        name = op.op_name
        if name == 'DW_OP_addr':
            stack.append(op.args[0])
        elif name.startswith('DW_OP_lit'):
            stack.append(int(name[len('DW_OP_lit'):]))
        elif name in _CONST_OPS:
            stack.append(op.args[0])
        elif name == 'DW_OP_plus_uconst':
            stack.append(pop() + op.args[0])
        elif name in _BINARY_OPS:
            b = pop()
            a = pop()
            stack.append(_BINARY_OPS[name](a, b))
        elif name == 'DW_OP_neg':
            stack.append(-pop())
        elif name == 'DW_OP_not':
            stack.append(~pop())
        elif name == 'DW_OP_dup':
            value = pop()
            stack.extend((value, value))
        elif name == 'DW_OP_drop':
            pop()
        elif name == 'DW_OP_swap':
            b = pop()
            a = pop()
            stack.extend((b, a))
        elif name == 'DW_OP_over':
            if len(stack) < 2:
                raise UnsupportedExpression("stack underflow")
            stack.append(stack[-2])
        elif name == 'DW_OP_push_object_address':
            stack.append(0)
        elif name == 'DW_OP_nop':
            pass
        elif name in ('DW_OP_piece', 'DW_OP_bit_piece'):
            raise UnsupportedExpression("composite location")
        else:
            raise UnsupportedExpression(f"unsupported operation {name}")

    return stack[-1] & mask


def encode_address_expression(address: int, address_size: int, little_endian: bool = True) -> bytes:
    """
    Encode "DW_OP_addr <address>".

    Args:
        address: Target address
        address_size: Width of the address operand in bytes
        little_endian: Byte order of the target

    Returns:
        bytes: Encoded expression
    """
    byteorder = 'little' if little_endian else 'big'
    return bytes([0x03]) + address.to_bytes(address_size, byteorder)
