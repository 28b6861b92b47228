from __future__ import annotations

import unittest
from unittest.mock import Mock

from llvmlite import ir

import kaleido_lang
from kaleido_lang import (
    Binary,
    Call,
    For,
    Function,
    If,
    Lowering,
    NamedValueScope,
    Number,
    Parser,
    Prototype,
    Tokenizer,
    Variable,
)


def _lowering(verify=None) -> Lowering:
    return Lowering(lambda: ir.Module(name="test"), {}, NamedValueScope(), verify=verify)


def _phis(fn: ir.Function) -> list[ir.PhiInstr]:
    return [i for b in fn.blocks for i in b.instructions if isinstance(i, ir.PhiInstr)]


def _definition(source: str) -> Function:
    parser = Parser(Tokenizer(source), dict(kaleido_lang.DEFAULT_BINOP_PRECEDENCE))
    parser.advance()
    return parser.parse_definition()


class LoweringTests(unittest.TestCase):
    def test_arithmetic_instructions(self) -> None:
        fn = _lowering().lower_function(_definition("def f(a b) (a+b)*(a-b)/b"))
        text = str(fn)
        for opcode in ("fadd", "fsub", "fmul", "fdiv", "ret double"):
            self.assertIn(opcode, text)

    def test_comparison_yields_double(self) -> None:
        text = str(_lowering().lower_function(_definition("def lt(a b) a<b")))
        self.assertIn("fcmp ult", text)
        self.assertIn("uitofp i1", text)

    def test_zero_argument_function(self) -> None:
        fn = _lowering().lower_function(_definition("def k() 4"))
        self.assertIn("ret double 0x4010000000000000", str(fn))
        self.assertEqual(len(fn.args), 0)

    def test_if_merges_with_phi(self) -> None:
        fn = _lowering().lower_function(_definition("def f(x) if x then 1 else 2"))
        text = str(fn)
        self.assertIn("fcmp one", text)
        self.assertEqual(len(_phis(fn)), 1)
        self.assertEqual(_phis(fn)[0].type, ir.DoubleType())
        self.assertIn("ifcont", text)

    def test_nested_if_phi_uses_exit_blocks(self) -> None:
        fn = _lowering().lower_function(
            _definition("def f(x y) if x then (if y then 1 else 2) else 3")
        )
        outer = fn.blocks[-1]
        phi = outer.instructions[0]
        self.assertIsInstance(phi, ir.PhiInstr)
        incoming_blocks = [block for _, block in phi.incomings]
        # The then-branch ends in the inner merge block, not the block it entered.
        self.assertTrue(incoming_blocks[0].name.startswith("ifcont."))
        self.assertEqual(incoming_blocks[1].name, "else")

    def test_for_loop_shape(self) -> None:
        fn = _lowering().lower_function(_definition("def f(n) for i = 1, i < n in i"))
        text = str(fn)
        self.assertIn("entrycond", text)
        self.assertIn("loopcond", text)
        self.assertIn("nextvar", text)
        self.assertIn("afterloop", text)
        (loop_var,) = _phis(fn)
        self.assertEqual(len(loop_var.incomings), 2)

    def test_for_loop_restores_shadowed_binding(self) -> None:
        lowering = _lowering()
        fn = lowering.lower_function(_definition("def f(i) for i = 1, i < 3 in i"))
        self.assertIs(lowering.scope.lookup("i"), fn.args[0])

    def test_for_loop_variable_is_unbound_afterwards(self) -> None:
        lowering = _lowering()
        lowering.lower_function(_definition("def f(n) for i = 1, i < n in n"))
        self.assertNotIn("i", lowering.scope)

    def test_call_declares_function_from_signature_table(self) -> None:
        lowering = _lowering()
        lowering.lower_function(_definition("def g(x) x"))
        lowering.take_module()

        lowering.lower_function(_definition("def h(y) g(y)+1"))
        g = lowering.module.globals["g"]
        self.assertTrue(g.is_declaration)
        self.assertEqual(len(g.args), 1)

    def test_unknown_variable(self) -> None:
        lowering = _lowering()
        with self.assertRaises(kaleido_lang.UnknownNameError) as ctx:
            lowering.lower_function(_definition("def f(x) y"))
        self.assertEqual(ctx.exception.message, "Unknown variable name 'y'")
        self.assertNotIn("f", lowering.module.globals)

    def test_unknown_function(self) -> None:
        with self.assertRaises(kaleido_lang.UnknownNameError) as ctx:
            _lowering().lower_function(_definition("def f(x) nope(x)"))
        self.assertEqual(ctx.exception.message, "Unknown function referenced 'nope'")

    def test_call_arity_mismatch(self) -> None:
        lowering = _lowering()
        lowering.declare_extern(Prototype("two", ("a", "b")))
        with self.assertRaises(kaleido_lang.ArityError):
            lowering.lower_function(_definition("def f(x) two(x)"))

    def test_unsupported_operator(self) -> None:
        with self.assertRaises(kaleido_lang.OperatorError) as ctx:
            _lowering().lower_function(_definition("def f(a b) a>b"))
        self.assertEqual(ctx.exception.message, "invalid binary operator '>'")

    def test_lower_rejects_unknown_node(self) -> None:
        lowering = _lowering()
        with self.assertRaises(TypeError):
            lowering.lower(object())

    def test_failed_function_keeps_extern_declarations(self) -> None:
        lowering = _lowering()
        lowering.declare_extern(Prototype("sin", ("x",)))
        with self.assertRaises(kaleido_lang.UnknownNameError):
            lowering.lower_function(_definition("def f(x) sin(z)"))
        self.assertIn("sin", lowering.module.globals)
        self.assertNotIn("f", lowering.module.globals)

    def test_failed_function_can_be_defined_again(self) -> None:
        lowering = _lowering()
        with self.assertRaises(kaleido_lang.UnknownNameError):
            lowering.lower_function(_definition("def f(x) z"))
        fn = lowering.lower_function(_definition("def f(x) x"))
        self.assertFalse(fn.is_declaration)

    def test_second_body_in_same_module_rejected(self) -> None:
        lowering = _lowering()
        lowering.lower_function(_definition("def f(x) x"))
        with self.assertRaises(kaleido_lang.RedefinitionError):
            lowering.lower_function(_definition("def f(x) x+1"))

    def test_redefinition_in_new_module_allowed(self) -> None:
        lowering = _lowering()
        lowering.lower_function(_definition("def f(x) x"))
        lowering.take_module()
        fn = lowering.lower_function(_definition("def f(x y) x+y"))
        self.assertEqual(len(fn.args), 2)
        self.assertEqual(lowering.signatures["f"].params, ("x", "y"))

    def test_failed_redefinition_keeps_previous_signature(self) -> None:
        lowering = _lowering()
        lowering.lower_function(_definition("def f(a b) a+b"))
        lowering.take_module()
        with self.assertRaises(kaleido_lang.UnknownNameError):
            lowering.lower_function(_definition("def f(a) zz"))
        self.assertEqual(lowering.signatures["f"].params, ("a", "b"))
        self.assertNotIn("f", lowering.module.globals)

    def test_failed_first_definition_leaves_no_signature(self) -> None:
        lowering = _lowering()
        with self.assertRaises(kaleido_lang.UnknownNameError):
            lowering.lower_function(_definition("def bad(x) y"))
        self.assertNotIn("bad", lowering.signatures)

    def test_extern_redeclaration(self) -> None:
        lowering = _lowering()
        first = lowering.declare_extern(Prototype("cos", ("x",)))
        self.assertIs(lowering.declare_extern(Prototype("cos", ("y",))), first)
        with self.assertRaises(kaleido_lang.RedefinitionError):
            lowering.declare_extern(Prototype("cos", ("x", "y")))
        self.assertEqual(lowering.signatures["cos"].params, ("y",))

    def test_extern_then_definition_with_other_arity(self) -> None:
        lowering = _lowering()
        lowering.declare_extern(Prototype("g", ("x",)))
        with self.assertRaises(kaleido_lang.RedefinitionError):
            lowering.lower_function(_definition("def g(x y) x"))
        self.assertEqual(lowering.signatures["g"].arity, 1)

    def test_verification_failure_discards_function(self) -> None:
        verify = Mock(side_effect=kaleido_lang.VerificationError("bad"))
        lowering = _lowering(verify=verify)
        with self.assertRaises(kaleido_lang.VerificationError):
            lowering.lower_function(_definition("def f(x) x"))
        verify.assert_called_once()
        self.assertNotIn("f", lowering.module.globals)

    def test_hand_built_nodes(self) -> None:
        body = If(
            Binary("<", Variable("x"), Number(0.0)),
            Call("neg", (Variable("x"),)),
            For("i", Number(0.0), Number(0.0), None, Variable("i")),
        )
        lowering = _lowering()
        lowering.declare_extern(Prototype("neg", ("v",)))
        fn = lowering.lower_function(Function(Prototype("f", ("x",)), body))
        self.assertIn("call double @\"neg\"", str(fn))


class EmitterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.emitter = kaleido_lang.CodeEmitter(kaleido_lang.LibraryManager())

    def test_new_module_targets_host(self) -> None:
        module = self.emitter.new_module()
        self.assertEqual(module.triple, self.emitter.triple)
        self.assertEqual(module.data_layout, self.emitter.data_layout)

    def test_transient_handle_is_released(self) -> None:
        lowering = Lowering(self.emitter.new_module, {}, NamedValueScope(), verify=self.emitter.verify)
        lowering.lower_function(Function(Prototype("seven", ()), Number(7.0)))
        with self.emitter.transient(lowering.take_module()) as handle:
            self.assertEqual(handle.lookup("seven")(), 7.0)
        self.assertTrue(handle.released)
        handle.release()
        with self.assertRaises(kaleido_lang.KaleidoError):
            handle.lookup("seven")

    def test_handle_released_when_block_raises(self) -> None:
        lowering = Lowering(self.emitter.new_module, {}, NamedValueScope(), verify=self.emitter.verify)
        lowering.lower_function(Function(Prototype("one", ()), Number(1.0)))
        with self.assertRaises(RuntimeError):
            with self.emitter.transient(lowering.take_module()) as handle:
                raise RuntimeError("boom")
        self.assertTrue(handle.released)

    def test_definition_waits_for_dependency(self) -> None:
        lowering = Lowering(self.emitter.new_module, {}, NamedValueScope(), verify=self.emitter.verify)
        lowering.declare_extern(Prototype("laterDefined", ("x",)))
        lowering.lower_function(_definition("def early(x) laterDefined(x)*2"))
        self.emitter.add_definition(lowering.take_module())
        self.assertTrue(self.emitter.is_pending("early"))
        self.assertFalse(self.emitter.is_defined("early"))

        lowering.lower_function(_definition("def laterDefined(x) x+1"))
        self.emitter.add_definition(lowering.take_module())
        self.assertTrue(self.emitter.is_defined("early"))
        self.assertTrue(self.emitter.is_defined("laterDefined"))
        self.assertFalse(self.emitter.is_pending("early"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main(verbosity=2)
