"""GenerationClientFake: scripted test double for GenerationClient.

Two ways to drive it:
- scenario="happy_path": every generate() returns SAMPLE_APP_CODE
- scenario="service_error": every call raises GenerationServiceError
- responses=[...]: each generate() consumes the next item; a str is returned
  as code, an Exception is raised. The last item repeats once the script runs out.

Every prompt passed to generate() is recorded in ``prompts`` so tests can
assert on the feedback injected between attempts.
"""

import json

from appbuilder.core.exceptions import GenerationServiceError
from appbuilder.generation.client import Completion, GeneratedCode

FAKE_MODEL = "fake-model"

SAMPLE_APP_CODE = """const { Button, Container, Typography, ThemeProvider, createTheme } = MaterialUI;

const theme = createTheme({ palette: { primary: { main: "#1976d2" } } });

function App() {
  const [count, setCount] = React.useState(0);
  return (
    <ThemeProvider theme={theme}>
      <Container>
        <Typography variant="h4">Task Tracker</Typography>
        <Button variant="contained" onClick={() => setCount(count + 1)}>
          Added {count} tasks
        </Button>
      </Container>
    </ThemeProvider>
  );
}

ReactDOM.createRoot(document.getElementById("root")).render(<App />);
"""

SAMPLE_REQUIREMENTS = {
    "appName": "Task Tracker",
    "entities": ["Task", "Project"],
    "roles": ["Member", "Manager"],
    "features": [
        {
            "title": "Create Tasks",
            "description": "Members can create tasks with a title, due date and priority.",
            "category": "CRUD",
            "userRole": "Member",
            "hint": "Keep tasks in component state",
        },
        {
            "title": "Assign Tasks",
            "description": "Managers assign tasks to members and track completion.",
            "category": "Workflow",
            "userRole": "Manager",
            "hint": "",
        },
    ],
    "technicalRequirements": ["Responsive layout", "Material UI components"],
    "businessRules": ["Only managers can reassign tasks"],
}


class GenerationClientFake:
    """Deterministic stand-in for GenerationClient. No network, no delays."""

    VALID_SCENARIOS = {"happy_path", "service_error"}

    def __init__(
        self,
        scenario: str = "happy_path",
        responses: list[str | Exception] | None = None,
        tokens_per_call: int = 1000,
        extraction_response: str | None = None,
    ):
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}")
        self.scenario = scenario
        self.responses = list(responses) if responses is not None else None
        self.tokens_per_call = tokens_per_call
        self.extraction_response = (
            extraction_response if extraction_response is not None else json.dumps(SAMPLE_REQUIREMENTS)
        )
        self.prompts: list[str] = []
        self.completions: list[tuple[str, str]] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def _next_response(self) -> str | Exception:
        if self.responses is None:
            if self.scenario == "service_error":
                return GenerationServiceError("AI service request timed out")
            return SAMPLE_APP_CODE

        if not self.responses:
            raise RuntimeError("GenerationClientFake has no scripted responses")
        index = min(len(self.prompts) - 1, len(self.responses) - 1)
        return self.responses[index]

    async def generate(self, prompt_text: str) -> GeneratedCode:
        self.prompts.append(prompt_text)
        response = self._next_response()
        if isinstance(response, Exception):
            raise response
        return GeneratedCode(code=response, tokens_used=self.tokens_per_call, model=FAKE_MODEL)

    async def complete(self, system: str, user: str, *, model: str | None = None, max_tokens: int | None = None) -> Completion:
        self.completions.append((system, user))
        if self.scenario == "service_error":
            raise GenerationServiceError("AI service request timed out")
        return Completion(text=self.extraction_response, tokens_used=self.tokens_per_call, model=model or FAKE_MODEL)
