import logging
from typing import Callable, List, Optional

from llvmlite import ir

from .exceptions import ArityError, OperatorError, RedefinitionError, UnknownNameError
from .models import SignatureTable
from .nodes import Binary, Call, Expr, For, Function, If, Number, Prototype, Variable
from .scope import NamedValueScope

logger = logging.getLogger(__name__)

DOUBLE = ir.DoubleType()
ZERO = ir.Constant(DOUBLE, 0.0)
ONE = ir.Constant(DOUBLE, 1.0)


class Lowering:
    """Lowers AST nodes into SSA form inside the currently open module.

    Exactly one module is open at a time. ``take_module`` hands it off and
    opens a fresh one; declarations for functions living in earlier modules
    are synthesized on demand from the shared signature table.
    """

    def __init__(
        self,
        new_module: Callable[[], ir.Module],
        signatures: SignatureTable,
        scope: NamedValueScope,
        verify: Optional[Callable[[ir.Module], object]] = None,
    ):
        self._new_module = new_module
        self.signatures = signatures
        self.scope = scope
        self.verify = verify
        self.module = new_module()
        self.builder: Optional[ir.IRBuilder] = None
        # Prototypes declared into the open module by extern statements.
        self._declared: List[Prototype] = []

    def take_module(self) -> ir.Module:
        module = self.module
        self.module = self._new_module()
        self._declared = []
        self.builder = None
        return module

    # --- Functions ---

    def get_function(self, name: str) -> Optional[ir.Function]:
        existing = self.module.globals.get(name)
        if isinstance(existing, ir.Function):
            return existing
        proto = self.signatures.get(name)
        if proto is not None:
            return self.lower_prototype(proto)
        return None

    def lower_prototype(self, proto: Prototype) -> ir.Function:
        existing = self.module.globals.get(proto.name)
        if isinstance(existing, ir.Function):
            if len(existing.args) != proto.arity:
                raise RedefinitionError(
                    f"Function '{proto.name}' redeclared with a different number of arguments"
                )
            return existing
        fnty = ir.FunctionType(DOUBLE, [DOUBLE] * proto.arity)
        fn = ir.Function(self.module, fnty, name=proto.name)
        for arg, name in zip(fn.args, proto.params):
            arg.name = name
        return fn

    def declare_extern(self, proto: Prototype) -> ir.Function:
        fn = self.lower_prototype(proto)
        self.signatures[proto.name] = proto
        self._declared.append(proto)
        return fn

    def lower_function(self, node: Function) -> ir.Function:
        proto = node.prototype
        fn = self.lower_prototype(proto)
        if not fn.is_declaration:
            raise RedefinitionError(f"Function '{proto.name}' cannot be redefined")

        block = fn.append_basic_block("entry")
        self.builder = ir.IRBuilder(block)

        self.scope.clear()
        for arg, name in zip(fn.args, proto.params):
            self.scope.bind(name, arg)

        try:
            self.builder.ret(self.lower(node.body))
            if self.verify is not None:
                self.verify(self.module)
        except Exception:
            self.discard(fn)
            raise
        # Recorded only on success so a failed redefinition keeps the old signature.
        self.signatures[proto.name] = proto
        return fn

    def discard(self, fn: ir.Function) -> None:
        """Drop a partially built function from the open module.

        llvmlite has no public way to unlink a global, so the open module is
        rebuilt from the declarations made by extern statements since the
        last hand-off. Everything else in it was synthesized from the
        signature table and comes back on demand.
        """
        logger.debug("Discarding partially lowered function %s", fn.name)
        self.module = self._new_module()
        self.builder = None
        for proto in self._declared:
            self.lower_prototype(proto)

    # --- Expressions ---

    def lower(self, node: Expr) -> ir.Value:
        b = self.builder
        match node:
            case Number(value):
                return ir.Constant(DOUBLE, value)

            case Variable(name):
                return self.scope.lookup(name)

            case Binary(op, lhs, rhs):
                left = self.lower(lhs)
                right = self.lower(rhs)
                if op == "+":
                    return b.fadd(left, right, "addtmp")
                if op == "-":
                    return b.fsub(left, right, "subtmp")
                if op == "*":
                    return b.fmul(left, right, "multmp")
                if op == "/":
                    return b.fdiv(left, right, "divtmp")
                if op == "<":
                    cmp = b.fcmp_unordered("<", left, right, "cmptmp")
                    return b.uitofp(cmp, DOUBLE, "booltmp")
                raise OperatorError(f"invalid binary operator '{op}'")

            case Call(callee, args):
                fn = self.get_function(callee)
                if fn is None:
                    raise UnknownNameError(f"Unknown function referenced '{callee}'")
                if len(fn.args) != len(args):
                    raise ArityError(
                        f"Incorrect # arguments passed to '{callee}': "
                        f"expected {len(fn.args)}, got {len(args)}"
                    )
                values = [self.lower(arg) for arg in args]
                return b.call(fn, values, "calltmp")

            case If():
                return self._lower_if(node)

            case For():
                return self._lower_for(node)

        raise TypeError(f"Cannot lower {type(node).__name__}")

    def _lower_if(self, node: If) -> ir.Value:
        b = self.builder
        cond = b.fcmp_ordered("!=", self.lower(node.cond), ZERO, "ifcond")

        fn = b.function
        then_bb = fn.append_basic_block("then")
        else_bb = ir.Block(fn, "else")
        merge_bb = ir.Block(fn, "ifcont")
        b.cbranch(cond, then_bb, else_bb)

        b.position_at_end(then_bb)
        then_v = self.lower(node.then)
        b.branch(merge_bb)
        # Nested control flow may have moved us; the phi needs the exit block.
        then_bb = b.block

        fn.blocks.append(else_bb)
        b.position_at_end(else_bb)
        else_v = self.lower(node.otherwise)
        b.branch(merge_bb)
        else_bb = b.block

        fn.blocks.append(merge_bb)
        b.position_at_end(merge_bb)
        phi = b.phi(DOUBLE, "iftmp")
        phi.add_incoming(then_v, then_bb)
        phi.add_incoming(else_v, else_bb)
        return phi

    def _lower_for(self, node: For) -> ir.Value:
        b = self.builder
        fn = b.function
        start = self.lower(node.start)

        # Entry guard: a loop whose start already fails the end condition
        # never runs its body. The end expression is lowered again for the
        # loop test, so its side effects run once more than the iteration count.
        previous = self.scope.shadow(node.var, start)
        try:
            entry_cond = b.fcmp_ordered("!=", self.lower(node.end), ZERO, "entrycond")
        finally:
            self.scope.restore(node.var, previous)

        preheader = b.block
        loop_bb = fn.append_basic_block("loop")
        after_bb = ir.Block(fn, "afterloop")
        b.cbranch(entry_cond, loop_bb, after_bb)

        b.position_at_end(loop_bb)
        variable = b.phi(DOUBLE, node.var)
        variable.add_incoming(start, preheader)

        previous = self.scope.shadow(node.var, variable)
        try:
            # The body's value is ignored, but its errors are not.
            self.lower(node.body)
            step = self.lower(node.step) if node.step is not None else ONE
            next_var = b.fadd(variable, step, "nextvar")

            end_cond = b.fcmp_ordered("!=", self.lower(node.end), ZERO, "loopcond")
            loop_end = b.block
            fn.blocks.append(after_bb)
            b.cbranch(end_cond, loop_bb, after_bb)
            b.position_at_end(after_bb)
            variable.add_incoming(next_var, loop_end)
        finally:
            self.scope.restore(node.var, previous)

        return ZERO
