"""Shared test fixtures for all test groups.

The static verifier is exercised with fake lint/compile passes keyed on
markers in the code text, so tests never need Node.js:

- "LINT_ERROR" in the code: one ESLint error finding
- "NO_LINT_OUTPUT" in the code: the linter produces no structured output
- "COMPILE_ERROR" in the code: the compile pass raises
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from appbuilder.core.config import Settings
from appbuilder.db.base import Base, build_session_factory
from appbuilder.db.models import Artifact, RequirementsDocument
from appbuilder.generation.client_fake import SAMPLE_APP_CODE, SAMPLE_REQUIREMENTS, GenerationClientFake
from appbuilder.verification.toolchain import CompileError, LintFinding
from appbuilder.verification.verifier import StaticVerifier

LINT_ERROR_CODE = SAMPLE_APP_CODE + "\n// LINT_ERROR\nundefinedThing();\n"
LINT_MESSAGE = "'undefinedThing' is not defined."
LINT_DIAGNOSTIC = f"ESLint error: {LINT_MESSAGE} at line 3, column 5"

SAMPLE_PROMPT = (
    "I want a task tracker for my team. Members create tasks with due dates and priorities, "
    "managers assign tasks to members and see who finished what by the end of the week."
)


def compile_error_code(label: str) -> str:
    return f"COMPILE_ERROR {label}\n{SAMPLE_APP_CODE}"


def compile_diagnostic(label: str) -> str:
    return f"Babel compile error: Unexpected token (COMPILE_ERROR {label})"


class FakeLinter:
    """Linter double: reacts to markers in the code, records every call."""

    def __init__(self):
        self.calls: list[str] = []

    async def lint(self, code: str) -> list[LintFinding] | None:
        self.calls.append(code)
        if "NO_LINT_OUTPUT" in code:
            return None
        if "LINT_ERROR" in code:
            return [
                LintFinding(message="Unexpected console statement.", severity=1, rule_id="no-console", line=1, column=1),
                LintFinding(message=LINT_MESSAGE, severity=2, rule_id="no-undef", line=3, column=5),
            ]
        return []


class FakeCompiler:
    """Compiler double: raises for code whose first line carries COMPILE_ERROR."""

    def __init__(self):
        self.calls: list[str] = []

    async def compile(self, code: str) -> None:
        self.calls.append(code)
        first_line = code.strip().splitlines()[0]
        if "COMPILE_ERROR" in first_line:
            raise CompileError(f"Unexpected token ({first_line})")


@pytest.fixture
def settings():
    """Settings isolated from the environment's retry bound and secrets."""
    return Settings(
        code_validation_max_retries=3,
        jwt_secret="test-secret",
        anthropic_api_key="test-key",
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
async def engine(tmp_path):
    """SQLite test engine, one database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    # Import all models so metadata is populated
    import appbuilder.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def fake_linter():
    return FakeLinter()


@pytest.fixture
def fake_compiler():
    return FakeCompiler()


@pytest.fixture
def static_verifier(fake_linter, fake_compiler, settings):
    """StaticVerifier wired to the fake toolchain passes."""
    return StaticVerifier(linter=fake_linter, compiler=fake_compiler, settings=settings)


@pytest.fixture
def client_fake():
    """Fresh GenerationClientFake with happy_path scenario (default)."""
    return GenerationClientFake(scenario="happy_path")


@pytest.fixture
def create_document(session_factory):
    """Factory fixture: persist a draft RequirementsDocument and return it."""

    async def _create(
        user_id: str = "user_a",
        extracted_requirements: dict | None = None,
        title: str = "Task Tracker",
        status: str = "draft",
        color_code: str = "#1976d2",
    ) -> RequirementsDocument:
        async with session_factory() as session:
            document = RequirementsDocument(
                user_id=user_id,
                prompt=SAMPLE_PROMPT,
                title=title,
                color_code=color_code,
                extracted_requirements=(
                    extracted_requirements if extracted_requirements is not None else dict(SAMPLE_REQUIREMENTS)
                ),
                status=status,
            )
            session.add(document)
            await session.commit()
            return document

    return _create


@pytest.fixture
def create_artifact(session_factory):
    """Factory fixture: persist an Artifact for a document and return it."""

    async def _create(
        document: RequirementsDocument,
        code: str = SAMPLE_APP_CODE,
        name: str = "Task Tracker",
        status: str = "completed",
    ) -> Artifact:
        async with session_factory() as session:
            artifact = Artifact(
                id=uuid.uuid4(),
                user_id=document.user_id,
                requirements_document_id=document.id,
                name=name,
                description=document.prompt[:500],
                color_code=document.color_code,
                generated_code=code,
                status=status,
            )
            session.add(artifact)
            await session.commit()
            return artifact

    return _create
