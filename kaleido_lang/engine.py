import ctypes
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set

import llvmlite.binding as llvm
from llvmlite import ir

from .exceptions import KaleidoError, UnknownNameError, VerificationError
from .ffi import LibraryManager

logger = logging.getLogger(__name__)

llvm.initialize_native_target()
llvm.initialize_native_asmprinter()


def defined_functions(module: ir.Module) -> List[str]:
    return [fn.name for fn in module.functions if not fn.is_declaration]


def external_references(module: ir.Module) -> Set[str]:
    """Names the module calls but does not define."""
    refs: Set[str] = set()
    for fn in module.functions:
        for block in fn.blocks:
            for instr in block.instructions:
                if isinstance(instr, ir.CallInstr) and instr.callee.is_declaration:
                    refs.add(instr.callee.name)
    return refs


@dataclass
class PendingDefinition:
    names: List[str]
    requires: Set[str]
    llvm_ir: str = field(repr=False)


class CompiledHandle:
    """Owns one transient compiled module until ``release`` is called."""

    def __init__(self, engine: llvm.ExecutionEngine, name: str):
        self._engine = engine
        self.name = name
        self.released = False

    def lookup(self, symbol: str) -> Callable[[], float]:
        if self.released:
            raise KaleidoError(f"Compiled module '{self.name}' was already released")
        address = self._engine.get_function_address(symbol)
        if not address:
            raise UnknownNameError(f"Symbol '{symbol}' not found in compiled module")
        return ctypes.CFUNCTYPE(ctypes.c_double)(address)

    def release(self) -> None:
        if self.released:
            return
        self._engine.close()
        self.released = True
        logger.debug("Released compiled module %s", self.name)


class CodeEmitter:
    """Adapter over MCJIT playing the role of the opaque code-emission engine.

    Definitions live in one persistent engine and their addresses are
    published into the process symbol space, so every later module, named
    or anonymous, resolves them by name. A definition whose external
    references cannot be resolved yet is kept pending and materialized
    as soon as all of them can be.
    """

    def __init__(self, libraries: LibraryManager, optimize: bool = False):
        self.libraries = libraries
        self.optimize = optimize
        self._target = llvm.Target.from_default_triple()
        self.triple = llvm.get_process_triple()
        # Creating an engine also makes the host program's own symbols searchable.
        backing = llvm.parse_assembly("")
        host = llvm.create_mcjit_compiler(backing, self._target.create_target_machine())
        self.data_layout = str(host.target_data)
        # Engines holding materialized definitions; they live as long as the session.
        self._engines: List[llvm.ExecutionEngine] = [host]
        self._pending: Dict[str, PendingDefinition] = {}
        self._defined: Set[str] = set()

    def new_module(self, name: str = "my cool jit") -> ir.Module:
        module = ir.Module(name=name)
        module.triple = self.triple
        module.data_layout = self.data_layout
        return module

    def verify(self, module: ir.Module) -> llvm.ModuleRef:
        try:
            ref = llvm.parse_assembly(str(module))
            ref.verify()
        except RuntimeError as e:
            raise VerificationError(f"Module failed verification: {str(e).strip()}")
        return ref

    def _optimize(self, ref: llvm.ModuleRef) -> None:
        tm = self._target.create_target_machine()
        pb = llvm.create_pass_builder(tm, llvm.create_pipeline_tuning_options(speed_level=2))
        fpm = llvm.create_new_function_pass_manager()
        fpm.add_instruction_combine_pass()
        fpm.add_reassociate_pass()
        fpm.add_new_gvn_pass()
        fpm.add_simplify_cfg_pass()
        for fn in ref.functions:
            if not fn.is_declaration:
                fpm.run(fn, pb)

    def _compile(self, module: ir.Module) -> llvm.ModuleRef:
        ref = self.verify(module)
        if self.optimize:
            self._optimize(ref)
        return ref

    # --- Symbol resolution ---

    def is_defined(self, name: str) -> bool:
        return name in self._defined

    def is_pending(self, name: str) -> bool:
        return name in self._pending

    def _resolvable(self, name: str) -> bool:
        if name in self._defined:
            return True
        # Published by another session, whose code may already be gone.
        if self.libraries.is_published(name):
            return False
        return self.libraries.resolve(name) is not None

    def _ready(self) -> Dict[str, PendingDefinition]:
        candidates = dict(self._pending)
        changed = True
        while changed:
            changed = False
            for name, pending in list(candidates.items()):
                if any(not self._resolvable(dep) and dep not in candidates for dep in pending.requires):
                    del candidates[name]
                    changed = True
        return candidates

    def _missing(self, name: str, seen: Optional[Set[str]] = None) -> Optional[str]:
        """The first symbol that keeps ``name`` from resolving, if any."""
        if self._resolvable(name):
            return None
        pending = self._pending.get(name)
        if pending is None:
            return name
        seen = seen if seen is not None else set()
        seen.add(name)
        for dep in sorted(pending.requires):
            if dep in seen:
                continue
            missing = self._missing(dep, seen)
            if missing is not None:
                return missing
        return None

    def _materialize_ready(self) -> None:
        ready = self._ready()
        if not ready:
            return
        installed: Dict[int, PendingDefinition] = {id(p): p for p in ready.values()}
        # One engine per batch: a batch may be mutually recursive, and a
        # redefinition must not collide with the symbol it shadows.
        refs = [llvm.parse_assembly(p.llvm_ir) for p in installed.values()]
        engine = llvm.create_mcjit_compiler(refs[0], self._target.create_target_machine())
        for ref in refs[1:]:
            engine.add_module(ref)
        engine.finalize_object()
        self._engines.append(engine)
        for pending in installed.values():
            for name in pending.names:
                self._pending.pop(name, None)
                self.libraries.publish(name, engine.get_function_address(name))
                self._defined.add(name)
                logger.debug("Materialized definition %s", name)

    # --- Module hand-off ---

    def add_definition(self, module: ir.Module) -> None:
        """Register a module's functions permanently, compiling as soon as possible."""
        ref = self._compile(module)
        names = defined_functions(module)
        pending = PendingDefinition(names, external_references(module) - set(names), str(ref))
        for name in names:
            self._pending[name] = pending
        self._materialize_ready()
        for name in names:
            if name in self._pending:
                logger.debug(
                    "Deferred definition %s until %s resolves", name, self._missing(name)
                )

    @contextmanager
    def transient(self, module: ir.Module) -> Iterator[CompiledHandle]:
        """Compile ``module`` into its own engine, released when the block exits."""
        ref = self._compile(module)
        self._materialize_ready()
        for dep in sorted(external_references(module)):
            missing = self._missing(dep)
            if missing is not None:
                if missing == dep:
                    raise UnknownNameError(f"Unresolved external symbol '{dep}'")
                raise UnknownNameError(
                    f"Function '{dep}' depends on unresolved external symbol '{missing}'"
                )
        engine = llvm.create_mcjit_compiler(ref, self._target.create_target_machine())
        handle = CompiledHandle(engine, module.name)
        try:
            engine.finalize_object()
            yield handle
        finally:
            handle.release()
