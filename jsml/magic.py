"""
IPython magic commands for JSML.

Usage in a Jupyter notebook:
    # Load the extension
    %load_ext jsml

    # Pre-declare the result to satisfy type checkers
    from jsml import CompileResult
    rc: CompileResult | None = None

    %%jsml rc
    component Decay
      parameter k::Real = 0.5
      variable x::Real
    relations
      der(x) = -k*x
    end

    # rc is now a jsml.CompileResult
    from jsml.backends import SympyBackend
    backend = SympyBackend(rc.system).compile()

Options:
    %%jsml VAR_NAME [-c COMPONENT] [-v]

    -c, --component COMPONENT   Component to compile (default: the last one)
    -v, --verbose               Display the compiled equation system
"""

from IPython.core.magic import Magics, magics_class, cell_magic
from IPython.core.magic_arguments import argument, magic_arguments, parse_argstring

from jsml.compiler import compile_source


@magics_class
class JSMLMagics(Magics):
    """IPython magics for JSML."""

    @magic_arguments()
    @argument("var_name", type=str, help="Variable name to store the CompileResult")
    @argument(
        "-c",
        "--component",
        type=str,
        default=None,
        help="Component to compile (the last non-partial one if not provided)",
    )
    @argument("-v", "--verbose", action="store_true", help="Display the compiled system")
    @cell_magic
    def jsml(self, line, cell):
        """
        Compile JSML source to a jsml.CompileResult.

        Usage:
            %%jsml VAR_NAME [-c COMPONENT] [-v]

        Imports in the cell are resolved relative to the working directory.

        For help: %%jsml?
        """
        args = parse_argstring(self.jsml, line)
        result = compile_source(cell, args.component, filename="<cell>")

        self.shell.user_ns[args.var_name] = result

        if args.verbose:
            return result.system


def load_ipython_extension(ipython):
    """Load the JSML magic extension."""
    ipython.register_magics(JSMLMagics)
