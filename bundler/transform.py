"""Source transforms applied to each module before it enters the bundle.

ES module syntax is rewritten line-oriented into CommonJS so modules can live
in a plain function registry. The rewrite covers the static ``import``/``export``
forms; dynamic ``import()`` and ``import.meta`` are left untouched.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess

from runner_core.errors import BundleError

logger = logging.getLogger(__name__)

TRANSPILE_LOADERS = {"ts": "ts", "tsx": "tsx", "jsx": "jsx"}
TRANSPILE_TIMEOUT_S = 30

_IMPORT_FROM_RE = re.compile(
    r"""^([ \t]*)import\s+(?!type\s)([\w$*{}\s,]+?)\s*from\s*(['"])([^'"\n]+)\3[ \t]*;?""", re.M
)
_IMPORT_BARE_RE = re.compile(r"""^([ \t]*)import\s*(['"])([^'"\n]+)\2[ \t]*;?""", re.M)
_EXPORT_DEFAULT_NAMED_RE = re.compile(
    r"^([ \t]*)export\s+default\s+((?:async\s+)?function\s*\*?\s*|class\s+)([\w$]+)", re.M
)
_EXPORT_DEFAULT_RE = re.compile(r"^([ \t]*)export\s+default\s+", re.M)
_EXPORT_DECL_RE = re.compile(
    r"^([ \t]*)export\s+((?:async\s+)?function\s*\*?\s*|class\s+|(?:const|let|var)\s+)([\w$]+)", re.M
)
_EXPORT_STAR_RE = re.compile(
    r"""^([ \t]*)export\s*\*\s*(?:as\s+([\w$]+)\s+)?from\s*(['"])([^'"\n]+)\3[ \t]*;?""", re.M
)
_EXPORT_LIST_RE = re.compile(
    r"""^([ \t]*)export\s*\{([^}]*)\}\s*(?:from\s*(['"])([^'"\n]+)\3)?[ \t]*;?""", re.M
)
_ALIAS_RE = re.compile(r"([\w$]+)\s+as\s+([\w$]+)")
_REQUIRE_CALL_RE = re.compile(r"""(?<![.\w$])require\s*\(""")

DEFAULT_EXPORT_NAME = "__pgDefaultExport"


def _aliases(body: str) -> list[tuple[str, str]]:
    """Parse ``a, b as c`` into (local, exported) pairs."""
    pairs = []
    for part in body.split(","):
        part = part.strip()
        if not part:
            continue
        match = _ALIAS_RE.fullmatch(part)
        pairs.append((match.group(1), match.group(2)) if match else (part, part))
    return pairs


class _Rewriter:
    def __init__(self, require_name: str, entry: bool) -> None:
        self.require_name = require_name
        self.entry = entry
        self.exports: list[tuple[str, str]] = []
        self.counter = 0
        self.esm = False

    def require(self, specifier: str) -> str:
        return f'{self.require_name}("{specifier}")'

    def import_from(self, match: re.Match[str]) -> str:
        self.esm = True
        indent, clause, specifier = match.group(1), match.group(2).strip(), match.group(4)
        default = namespace = named = None
        if clause.startswith("{"):
            named = clause
        elif clause.startswith("*"):
            namespace = clause
        else:
            head, _, rest = clause.partition(",")
            default, rest = head.strip(), rest.strip()
            if rest.startswith("{"):
                named = rest
            elif rest.startswith("*"):
                namespace = rest

        source = self.require(specifier)
        statements = []
        if sum(item is not None for item in (default, namespace, named)) > 1:
            self.counter += 1
            temp = f"__pgImport{self.counter}"
            statements.append(f"var {temp} = {source};")
            source = temp
        if namespace:
            statements.append(f"var {namespace.split()[-1]} = {source};")
        if default:
            statements.append(f"var {default} = __pgDefault({source});")
        if named:
            pairs = _aliases(named.strip()[1:-1])
            binding = ", ".join(local if local == alias else f"{local}: {alias}" for local, alias in pairs)
            statements.append(f"var {{ {binding} }} = {source};")
        return indent + " ".join(statements)

    def import_bare(self, match: re.Match[str]) -> str:
        self.esm = True
        return f"{match.group(1)}{self.require(match.group(3))};"

    def export_default_named(self, match: re.Match[str]) -> str:
        self.esm = True
        self.exports.append((match.group(3), "default"))
        return match.group(1) + match.group(2) + match.group(3)

    def export_default(self, match: re.Match[str]) -> str:
        self.esm = True
        self.exports.append((DEFAULT_EXPORT_NAME, "default"))
        return f"{match.group(1)}var {DEFAULT_EXPORT_NAME} = "

    def export_decl(self, match: re.Match[str]) -> str:
        self.esm = True
        self.exports.append((match.group(3), match.group(3)))
        return match.group(1) + match.group(2) + match.group(3)

    def export_star(self, match: re.Match[str]) -> str:
        self.esm = True
        indent, alias, specifier = match.group(1), match.group(2), match.group(4)
        if self.entry:
            return f"{indent}{self.require(specifier)};"
        if alias:
            return f"{indent}exports.{alias} = {self.require(specifier)};"
        return (
            f"{indent}(function (m) {{ Object.keys(m).forEach(function (k) {{ "
            f'if (k !== "default" && !(k in exports)) exports[k] = m[k]; }}); }})({self.require(specifier)});'
        )

    def export_list(self, match: re.Match[str]) -> str:
        self.esm = True
        indent, body, specifier = match.group(1), match.group(2), match.group(4)
        pairs = _aliases(body)
        if specifier is None:
            self.exports.extend(pairs)
            return indent
        if self.entry:
            return f"{indent}{self.require(specifier)};"
        assignments = " ".join(f"exports.{alias} = m.{local};" for local, alias in pairs)
        return f"{indent}(function (m) {{ {assignments} }})({self.require(specifier)});"


def to_commonjs(source: str, require_name: str = "require", entry: bool = False) -> str:
    """Rewrite static ES module syntax into CommonJS.

    For the entry module exports are dropped instead of assigned, so its
    top-level declarations stay plain globals of the bundle.
    """
    rewriter = _Rewriter(require_name, entry)
    code = source
    if require_name != "require":
        code = _REQUIRE_CALL_RE.sub(f"{require_name}(", code)
    code = _IMPORT_FROM_RE.sub(rewriter.import_from, code)
    code = _IMPORT_BARE_RE.sub(rewriter.import_bare, code)
    code = _EXPORT_STAR_RE.sub(rewriter.export_star, code)
    code = _EXPORT_LIST_RE.sub(rewriter.export_list, code)
    code = _EXPORT_DEFAULT_NAMED_RE.sub(rewriter.export_default_named, code)
    code = _EXPORT_DEFAULT_RE.sub(rewriter.export_default, code)
    code = _EXPORT_DECL_RE.sub(rewriter.export_decl, code)

    if entry or not rewriter.esm:
        return code
    footer = "".join(f"\nexports.{exported} = {local};" for local, exported in rewriter.exports)
    return 'Object.defineProperty(exports, "__esModule", { value: true });\n' + code + footer


def find_requires(code: str, require_name: str = "require") -> list[str]:
    """Literal specifiers passed to ``require_name`` in order of first appearance."""
    pattern = re.compile(rf"""(?<![.\w$]){re.escape(require_name)}\s*\(\s*(['"])([^'"\n]+)\1\s*\)""")
    seen: list[str] = []
    for match in pattern.finditer(code):
        if match.group(2) not in seen:
            seen.append(match.group(2))
    return seen


def transpile(source: str, extension: str, path: str, esbuild_binary: str = "esbuild") -> str:
    """Strip types and transform JSX with esbuild; passes source through when esbuild is missing.

    Raises:
        BundleError: If esbuild rejects the source
    """
    loader = TRANSPILE_LOADERS.get(extension)
    if loader is None:
        return source
    executable = shutil.which(esbuild_binary)
    if executable is None:
        logger.warning(f"esbuild not found; '{path}' is bundled without transpiling")
        return source
    try:
        proc = subprocess.run(
            [executable, f"--loader={loader}", "--jsx=transform"],
            input=source,
            capture_output=True,
            text=True,
            timeout=TRANSPILE_TIMEOUT_S,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise BundleError(f"Could not transpile {path}: {e}", path) from e
    if proc.returncode != 0:
        raise BundleError(f"Could not transpile {path}: {proc.stderr.strip()}", path)
    return proc.stdout
