from appbuilder.verification.toolchain import BabelCompiler, CompileError, EslintLinter, LintFinding
from appbuilder.verification.verifier import StaticVerifier, VerificationResult

__all__ = [
    "BabelCompiler",
    "CompileError",
    "EslintLinter",
    "LintFinding",
    "StaticVerifier",
    "VerificationResult",
]
