"""StaticVerifier: lint + compile check for generated JSX.

Short-circuits on the first failing step and returns a value, never raises
for bad code. The diagnostic is written so it can be fed straight back to the
generator as prompt feedback.
"""

from dataclasses import dataclass

import structlog

from appbuilder.core.config import Settings, get_settings
from appbuilder.verification.toolchain import BabelCompiler, Compiler, EslintLinter, LintFinding, Linter

logger = structlog.get_logger(__name__)

EMPTY_CODE_DIAGNOSTIC = "Generated code is empty or invalid."


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    diagnostic: str | None = None


def format_lint_diagnostic(finding: LintFinding) -> str:
    """'ESLint error: <message> at line L, column C' (location only when known)."""
    diagnostic = f"ESLint error: {finding.message}"
    if finding.line is not None:
        diagnostic += f" at line {finding.line}"
        if finding.column is not None:
            diagnostic += f", column {finding.column}"
    return diagnostic


class StaticVerifier:
    """Runs the lint pass, then the compile pass, on one code string.

    Args:
        linter: Lint pass (defaults to EslintLinter)
        compiler: Compile pass (defaults to BabelCompiler)
        settings: Used to build the default toolchain
    """

    def __init__(
        self,
        linter: Linter | None = None,
        compiler: Compiler | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.linter = linter or EslintLinter(settings)
        self.compiler = compiler or BabelCompiler(settings)

    async def verify(self, code: object) -> VerificationResult:
        if not isinstance(code, str) or not code.strip():
            return VerificationResult(valid=False, diagnostic=EMPTY_CODE_DIAGNOSTIC)

        findings = await self.linter.lint(code)
        if not findings:
            if findings is None:
                # Inconclusive lint never blocks generation
                logger.warning("lint_inconclusive_treated_as_pass", code_length=len(code))
        else:
            errors = [finding for finding in findings if finding.is_error]
            if errors:
                diagnostic = format_lint_diagnostic(errors[0])
                logger.info("verification_failed", stage="lint", diagnostic=diagnostic, error_count=len(errors))
                return VerificationResult(valid=False, diagnostic=diagnostic)

        try:
            await self.compiler.compile(code)
        except Exception as e:
            diagnostic = f"Babel compile error: {e}"
            logger.info("verification_failed", stage="compile", diagnostic=diagnostic, error_type=type(e).__name__)
            return VerificationResult(valid=False, diagnostic=diagnostic)

        return VerificationResult(valid=True)
