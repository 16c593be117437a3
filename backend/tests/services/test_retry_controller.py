"""Tests for the verify -> regenerate loop.

The regenerate_fn double writes the next scripted code onto the artifact,
the way GenerationService does, so each iteration re-reads fresh code.
"""

import uuid

import pytest
from sqlalchemy import select

from appbuilder.core.exceptions import NotFoundError
from appbuilder.db.models import Artifact, RequirementsDocument
from appbuilder.generation.client_fake import SAMPLE_APP_CODE
from appbuilder.services.retry_controller import RegenerationResult, RetryController
from appbuilder.verification.verifier import StaticVerifier
from tests.conftest import LINT_DIAGNOSTIC, LINT_ERROR_CODE, compile_diagnostic, compile_error_code

pytestmark = pytest.mark.integration


class ScriptedRegenerator:
    """Records calls; writes the next scripted item (code or failure) onto the artifact."""

    def __init__(self, session_factory, artifact_id, script):
        self.session_factory = session_factory
        self.artifact_id = artifact_id
        self.script = list(script)
        self.calls: list[dict] = []

    async def __call__(self, warning, attempts):
        self.calls.append({"warning": warning, "attempts": attempts})
        item = self.script[min(len(self.calls) - 1, len(self.script) - 1)]
        if isinstance(item, RegenerationResult):
            return item

        async with self.session_factory() as session:
            result = await session.execute(select(Artifact).where(Artifact.id == self.artifact_id))
            artifact = result.scalar_one()
            artifact.generated_code = item
            artifact.status = "completed"
            await session.commit()
        return RegenerationResult(success=True)


async def _statuses(session_factory, artifact_id, doc_id):
    async with session_factory() as session:
        artifact = (await session.execute(select(Artifact).where(Artifact.id == artifact_id))).scalar_one()
        document = (
            await session.execute(select(RequirementsDocument).where(RequirementsDocument.id == doc_id))
        ).scalar_one()
        return artifact, document


@pytest.fixture
def controller(static_verifier, session_factory, settings):
    return RetryController(verifier=static_verifier, session_factory=session_factory, settings=settings)


async def test_valid_code_completes_without_regeneration(controller, session_factory, create_document, create_artifact):
    document = await create_document()
    artifact = await create_artifact(document, code=SAMPLE_APP_CODE)
    regenerate = ScriptedRegenerator(session_factory, artifact.id, [SAMPLE_APP_CODE])

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate)

    assert outcome.success
    assert outcome.attempts == 0
    assert outcome.error_message is None
    assert regenerate.calls == []
    stored, doc = await _statuses(session_factory, artifact.id, document.id)
    assert (stored.status, doc.status) == ("completed", "completed")


async def test_diagnostic_is_fed_back_as_warning(controller, session_factory, create_document, create_artifact):
    document = await create_document()
    artifact = await create_artifact(document, code=LINT_ERROR_CODE)
    regenerate = ScriptedRegenerator(session_factory, artifact.id, [SAMPLE_APP_CODE])

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate)

    assert outcome.success
    assert outcome.attempts == 1
    assert regenerate.calls == [{"warning": LINT_DIAGNOSTIC, "attempts": 0}]


@pytest.mark.parametrize("max_retries", [0, 1, 2, 3, 5])
async def test_loop_is_bounded(
    controller, session_factory, create_document, create_artifact, fake_linter, max_retries
):
    document = await create_document()
    artifact = await create_artifact(document, code=compile_error_code("initial"))
    regenerate = ScriptedRegenerator(session_factory, artifact.id, [compile_error_code("again")])

    outcome = await controller.verify_and_retry(
        artifact.id, "user_a", document.id, regenerate, max_retries=max_retries
    )

    assert not outcome.success
    assert outcome.attempts == max_retries
    assert len(regenerate.calls) == max_retries
    assert len(fake_linter.calls) == max_retries + 1
    expected = compile_diagnostic("initial") if max_retries == 0 else compile_diagnostic("again")
    assert outcome.error_message == expected

    stored, doc = await _statuses(session_factory, artifact.id, document.id)
    assert stored.status == "failed"
    assert stored.error_message == expected
    assert doc.status == "failed"


async def test_regeneration_failure_is_terminal(controller, session_factory, create_document, create_artifact):
    document = await create_document()
    artifact = await create_artifact(document, code=LINT_ERROR_CODE)
    regenerate = ScriptedRegenerator(
        session_factory,
        artifact.id,
        [RegenerationResult(success=False, error_message="AI service request timed out")],
    )

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate, max_retries=3)

    assert not outcome.success
    assert outcome.attempts == 0
    assert outcome.error_message == "AI service request timed out"
    assert len(regenerate.calls) == 1

    stored, doc = await _statuses(session_factory, artifact.id, document.id)
    assert stored.status == "failed"
    assert stored.error_message == "AI service request timed out"
    assert doc.status == "failed"


async def test_regeneration_failure_after_a_retry(controller, session_factory, create_document, create_artifact):
    document = await create_document()
    artifact = await create_artifact(document, code=LINT_ERROR_CODE)
    regenerate = ScriptedRegenerator(
        session_factory,
        artifact.id,
        [LINT_ERROR_CODE, RegenerationResult(success=False, error_message="AI service error: overloaded")],
    )

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate, max_retries=3)

    assert not outcome.success
    assert outcome.attempts == 1
    assert outcome.error_message == "AI service error: overloaded"
    assert [call["attempts"] for call in regenerate.calls] == [0, 1]


async def test_success_after_failure_clears_error(controller, session_factory, create_document, create_artifact):
    document = await create_document(status="failed")
    artifact = await create_artifact(document, code=LINT_ERROR_CODE, status="failed")
    regenerate = ScriptedRegenerator(session_factory, artifact.id, [compile_error_code("x"), SAMPLE_APP_CODE])

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate)

    assert outcome.success
    assert outcome.attempts == 2
    stored, doc = await _statuses(session_factory, artifact.id, document.id)
    assert stored.status == "completed"
    assert stored.error_message is None
    assert doc.status == "completed"


async def test_default_bound_comes_from_settings(
    static_verifier, session_factory, settings, create_document, create_artifact
):
    settings.code_validation_max_retries = 1
    controller = RetryController(verifier=static_verifier, session_factory=session_factory, settings=settings)
    document = await create_document()
    artifact = await create_artifact(document, code=LINT_ERROR_CODE)
    regenerate = ScriptedRegenerator(session_factory, artifact.id, [LINT_ERROR_CODE])

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate)

    assert outcome.attempts == 1
    assert len(regenerate.calls) == 1


async def test_negative_bound_rejected(controller, session_factory, create_document, create_artifact):
    document = await create_document()
    artifact = await create_artifact(document)

    with pytest.raises(ValueError):
        await controller.verify_and_retry(
            artifact.id, "user_a", document.id, ScriptedRegenerator(session_factory, artifact.id, []), max_retries=-1
        )


async def test_other_users_artifact_is_not_found(controller, session_factory, create_document, create_artifact):
    document = await create_document(user_id="user_a")
    artifact = await create_artifact(document)

    with pytest.raises(NotFoundError):
        await controller.verify_and_retry(
            artifact.id, "user_b", document.id, ScriptedRegenerator(session_factory, artifact.id, [])
        )


async def test_missing_artifact_is_not_found(controller, session_factory, create_document):
    document = await create_document()

    with pytest.raises(NotFoundError):
        await controller.verify_and_retry(
            uuid.uuid4(), "user_a", document.id, ScriptedRegenerator(session_factory, uuid.uuid4(), [])
        )


class UnwritableToolchainLinter:
    """Lint pass that fails the way an unusable toolchain directory does."""

    async def lint(self, code):
        raise PermissionError(13, "Permission denied", "/opt/toolchain")


async def test_verifier_exception_fails_artifact_and_document(
    session_factory, settings, fake_compiler, create_document, create_artifact
):
    verifier = StaticVerifier(linter=UnwritableToolchainLinter(), compiler=fake_compiler, settings=settings)
    controller = RetryController(verifier=verifier, session_factory=session_factory, settings=settings)
    document = await create_document()
    # provisional status left by the generation call
    artifact = await create_artifact(document, code=SAMPLE_APP_CODE, status="completed")
    regenerate = ScriptedRegenerator(session_factory, artifact.id, [SAMPLE_APP_CODE])

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate)

    assert not outcome.success
    assert outcome.attempts == 0
    assert outcome.error_message.startswith("Verification error:")
    assert "Permission denied" in outcome.error_message
    assert regenerate.calls == []
    assert fake_compiler.calls == []

    stored, doc = await _statuses(session_factory, artifact.id, document.id)
    assert stored.status == "failed"
    assert stored.error_message == outcome.error_message
    assert doc.status == "failed"


async def test_regenerate_exception_fails_artifact_and_document(
    controller, session_factory, create_document, create_artifact
):
    document = await create_document()
    artifact = await create_artifact(document, code=LINT_ERROR_CODE)

    async def regenerate(warning, attempts):
        raise RuntimeError("connection pool exhausted")

    outcome = await controller.verify_and_retry(artifact.id, "user_a", document.id, regenerate, max_retries=2)

    assert not outcome.success
    assert outcome.attempts == 0
    assert outcome.error_message == "Regeneration error: connection pool exhausted"

    stored, doc = await _statuses(session_factory, artifact.id, document.id)
    assert stored.status == "failed"
    assert stored.error_message == "Regeneration error: connection pool exhausted"
    assert doc.status == "failed"
