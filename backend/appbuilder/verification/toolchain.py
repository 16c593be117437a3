"""Node.js toolchain used by the static verifier.

- EslintLinter: ``npx eslint --stdin --format json`` with a generated flat config
- BabelCompiler: ``node`` running @babel/core with preset-env + preset-react

Both expect ``eslint``, ``@eslint/js``, ``globals``, ``@babel/core``,
``@babel/preset-env`` and ``@babel/preset-react`` to be installed in
``settings.verifier_toolchain_dir``.
"""

import asyncio
import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from appbuilder.core.config import Settings, get_settings
from appbuilder.generation.prompts import UI_TOOLKIT_GLOBALS

logger = structlog.get_logger(__name__)

VIRTUAL_FILENAME = "generated-app.jsx"
ESLINT_ERROR_SEVERITY = 2

_ESLINT_CONFIG_TEMPLATE = """import js from "@eslint/js";
import globals from "globals";

export default [
  js.configs.recommended,
  {{
    files: ["**/*.jsx", "**/*.js"],
    languageOptions: {{
      ecmaVersion: 2021,
      sourceType: "module",
      parserOptions: {{ ecmaFeatures: {{ jsx: true }} }},
      globals: {{ ...globals.browser, ...globals.es2021, ...{toolkit_globals} }},
    }},
    rules: {{
      "no-unused-vars": ["error", {{ varsIgnorePattern: "^[A-Z]" }}],
    }},
  }},
];
"""

_BABEL_SCRIPT = """
const babel = require("@babel/core");
let source = "";
process.stdin.setEncoding("utf8");
process.stdin.on("data", (chunk) => { source += chunk; });
process.stdin.on("end", async () => {
  try {
    await babel.transformAsync(source, {
      presets: [
        ["@babel/preset-env", { targets: { esmodules: true } }],
        ["@babel/preset-react", { runtime: "classic" }],
      ],
      sourceType: "script",
      filename: "generated-app.jsx",
      babelrc: false,
      configFile: false,
    });
    process.exit(0);
  } catch (err) {
    process.stderr.write(String((err && err.message) || err || "Unknown compilation error"));
    process.exit(1);
  }
});
"""


@dataclass(frozen=True)
class LintFinding:
    """One ESLint message."""

    message: str
    severity: int
    rule_id: str | None = None
    line: int | None = None
    column: int | None = None
    fatal: bool = False

    @property
    def is_error(self) -> bool:
        return self.severity >= ESLINT_ERROR_SEVERITY or self.fatal


class CompileError(Exception):
    """Raised when the JSX compile pass rejects the code."""

    pass


@runtime_checkable
class Linter(Protocol):
    async def lint(self, code: str) -> list[LintFinding] | None:
        """Lint code. None means the tool produced no structured output."""
        ...


@runtime_checkable
class Compiler(Protocol):
    async def compile(self, code: str) -> None:
        """Parse and lower code; raise on failure."""
        ...


@dataclass(frozen=True)
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str


async def run_tool(args: list[str], stdin: str, cwd: Path, timeout: float) -> ProcessResult:
    """Run a toolchain command, feeding ``stdin`` and collecting output.

    The process is killed when it exceeds ``timeout``.

    Raises:
        OSError: when the executable is missing or cannot be started
        asyncio.TimeoutError: when the timeout elapses
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd),
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(stdin.encode("utf-8")), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise
    return ProcessResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _toolchain_dir(settings: Settings) -> Path:
    return Path(settings.verifier_toolchain_dir) if settings.verifier_toolchain_dir else Path.cwd()


def build_eslint_config(toolkit_globals: tuple[str, ...] = UI_TOOLKIT_GLOBALS) -> str:
    """Render the ESLint flat config with the UI toolkit globals marked readonly."""
    readonly = {name: "readonly" for name in toolkit_globals}
    return _ESLINT_CONFIG_TEMPLATE.format(toolkit_globals=json.dumps(readonly))


def parse_eslint_output(stdout: str) -> list[LintFinding] | None:
    """Parse ``eslint --format json`` output.

    Returns None when there is no structured output (empty, not JSON, or no
    file results), otherwise the messages of the first file result.
    """
    if not stdout.strip():
        return None
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None

    findings = []
    for message in data[0].get("messages", []):
        if not isinstance(message, dict):
            continue
        findings.append(
            LintFinding(
                message=message.get("message", "Unknown linting error"),
                severity=int(message.get("severity", 1)),
                rule_id=message.get("ruleId"),
                line=message.get("line"),
                column=message.get("column"),
                fatal=bool(message.get("fatal", False)),
            )
        )
    return findings


class EslintLinter:
    """Lint pass: ESLint recommended rules for browser JSX."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def lint(self, code: str) -> list[LintFinding] | None:
        cwd = _toolchain_dir(self.settings)
        config_path = None
        try:
            # Config lives in the toolchain dir so its imports resolve against node_modules
            fd, config_path = tempfile.mkstemp(prefix=".eslint-generated-", suffix=".config.mjs", dir=cwd)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(build_eslint_config())

            args = [
                self.settings.npx_binary,
                "--no-install",
                "eslint",
                "--config",
                config_path,
                "--stdin",
                "--stdin-filename",
                VIRTUAL_FILENAME,
                "--format",
                "json",
            ]
            result = await run_tool(args, code, cwd, self.settings.verifier_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("eslint_timeout", timeout=self.settings.verifier_timeout_seconds)
            return None
        except OSError as e:
            # missing npx, missing or unwritable toolchain dir, exec permission
            logger.warning(
                "eslint_unavailable",
                npx=self.settings.npx_binary,
                toolchain_dir=str(cwd),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        finally:
            if config_path is not None:
                Path(config_path).unlink(missing_ok=True)

        findings = parse_eslint_output(result.stdout)
        if findings is None and result.returncode != 0:
            logger.warning("eslint_no_structured_output", returncode=result.returncode, stderr=result.stderr[:500])
        return findings


class BabelCompiler:
    """Compile pass: Babel with the React preset (classic runtime)."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def compile(self, code: str) -> None:
        cwd = _toolchain_dir(self.settings)
        try:
            result = await run_tool(
                [self.settings.node_binary, "-e", _BABEL_SCRIPT],
                code,
                cwd,
                self.settings.verifier_timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise CompileError(f"node executable not found: {self.settings.node_binary}") from exc
        except asyncio.TimeoutError as exc:
            raise CompileError(f"compilation timed out after {self.settings.verifier_timeout_seconds}s") from exc
        except OSError as exc:
            raise CompileError(f"could not run node: {exc}") from exc

        if result.returncode != 0:
            raise CompileError(result.stderr.strip() or "Unknown compilation error")
