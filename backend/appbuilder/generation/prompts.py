"""Prompts for requirements extraction and app code generation.

build_prompt() is a pure function of the requirements document and the
optional warning: same inputs, byte-identical output. The requirements are
serialised with sorted keys so dict ordering never leaks into the prompt.
"""

import json

from appbuilder.schemas.requirements import ExtractedRequirements

# Globals the generated code may rely on. The static verifier declares the
# same set as readonly ESLint globals.
UI_TOOLKIT_GLOBALS = ("React", "ReactDOM", "MaterialUI")

SYSTEM_PROMPT = """You are a senior front-end engineer who turns structured software requirements into a single, runnable React application.

You write code that runs directly in the browser with no build step beyond JSX transpilation. You never explain your work; you only return the requested JSON object.
"""

EXTRACTION_SYSTEM_PROMPT = """You are an expert business analyst specialized in extracting structured software requirements from natural language descriptions.

Your job: analyze the input text and return ONLY a valid JSON object with this structure, filling any details you can infer from the text. Do NOT add any extra commentary or text outside the JSON.

{
  "appName": "string - the name/title of the application (short and clear)",
  "entities": ["string array - main data objects/entities mentioned (e.g. Student, Course)"],
  "roles": ["string array - user roles/types mentioned (e.g. User, Admin)"],
  "features": [
    {
      "title": "string - short feature name",
      "description": "string - detailed but concise description of the feature",
      "category": "string - functional category (CRUD, Reporting, Authentication, etc.)",
      "userRole": "string - role most associated with this feature",
      "hint": "string - any additional context on how to implement or consider this feature"
    }
  ],
  "technicalRequirements": ["string array - technology constraints (add sensible ones even if not explicitly stated)"],
  "businessRules": ["string array - explicit or implied rules (e.g. 'Students must enrol before receiving grades')"]
}

Rules:
- Extract ONLY what is explicitly stated or reasonably implied in the text.
- Do not invent requirements that are not supported by the input.
- If a field has no information, use an empty string or empty array.
- Always output valid JSON, with double quotes for keys and string values.
- Be specific and actionable in feature descriptions.
- Keep names concise and consistent, but meaningful, with spaces between words.
"""

_SCAFFOLDING_INSTRUCTIONS = """**Technical constraints (mandatory):**
- Produce ONE self-contained JSX file. Do not use `import`, `export` or `require`.
- The only libraries available are React, ReactDOM and Material UI, exposed as the browser globals `React`, `ReactDOM` and `MaterialUI`. Destructure what you need from them, e.g. `const { Button, TextField } = MaterialUI;`.
- Do NOT use any other library, CDN, font or icon package.
- Do NOT make network calls of any kind (`fetch`, `XMLHttpRequest`, `WebSocket`, `navigator.sendBeacon`, external URLs). Keep all data in React state, seeded with realistic sample records.
- Define a top-level `App` component and render it with `ReactDOM.createRoot(document.getElementById("root")).render(<App />);`.
- Use the theme color above as the Material UI primary color via `MaterialUI.createTheme` and `MaterialUI.ThemeProvider`.
- Implement every feature listed in the requirements, with role switching when more than one role is defined.
- The code must pass ESLint's recommended rules and compile with Babel's React preset: no undefined variables, no unused variables, no duplicate keys.

**Output format:**
Return ONLY a JSON object of the form {"code": "<the complete JSX source>"} with the source as a properly escaped JSON string. No markdown, no commentary."""


def _format_list(items: list[str], fallback: str) -> str:
    return ", ".join(items) if items else fallback


def build_prompt(
    requirements: ExtractedRequirements,
    *,
    title: str,
    original_prompt: str,
    color_code: str,
    warning: str | None = None,
) -> str:
    """Build the user prompt for one code-generation call.

    Args:
        requirements: Validated structured requirements
        title: Requirements document title (fallback app name)
        original_prompt: The user's original free-text description
        color_code: Theme color (#RRGGBB)
        warning: Feedback from the previous failed verification, or a user note.
            Blank/None means no feedback section.

    Returns:
        The exact prompt text sent to the generation client
    """
    app_name = requirements.app_name or title
    requirements_json = json.dumps(requirements.to_wire(), indent=2, sort_keys=True, ensure_ascii=False)

    sections = [
        "Generate a complete web application based on these requirements.",
        f"App Name: {app_name}",
        f"Original Prompt: {original_prompt}",
        f"Theme Color: {color_code}",
        f"Structured Requirements:\n{requirements_json}",
        f"Technical Requirements: {_format_list(requirements.technical_requirements, 'Modern web stack')}",
        f"Business Rules: {_format_list(requirements.business_rules, 'None specified')}",
        _SCAFFOLDING_INSTRUCTIONS,
    ]

    if warning is not None and warning.strip():
        sections.append(
            "**Previous attempt feedback (must be fixed):**\n"
            "The previous version of this application was rejected with the following message. "
            "Address it specifically while keeping every requirement above:\n"
            f"{warning}"
        )

    return "\n\n".join(sections) + "\n"


def build_prompt_for_document(document, warning: str | None = None) -> str:
    """build_prompt() for a RequirementsDocument row.

    The stored extraction blob is validated through ExtractedRequirements here,
    so malformed JSON never reaches the prompt.
    """
    requirements = ExtractedRequirements.model_validate(document.extracted_requirements or {})
    return build_prompt(
        requirements,
        title=document.title,
        original_prompt=document.prompt,
        color_code=document.color_code,
        warning=warning,
    )
