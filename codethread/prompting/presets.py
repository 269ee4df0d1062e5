from __future__ import annotations

from codethread.prompting.layers import ResponseFormat, ResponseTone, UserPreferences


DEFAULT_SYSTEM_PROMPTS: dict[str, str] = {
    "GENERAL": "You are a helpful, harmless, and honest AI assistant.",
    "CODING": (
        "You are an expert software engineer with deep knowledge of programming languages, "
        "frameworks, and best practices."
    ),
    "CREATIVE": "You are a creative AI assistant with a talent for generating imaginative and original content.",
    "ACADEMIC": (
        "You are a knowledgeable AI research assistant with expertise in academic subjects and formal writing."
    ),
}

TASK_INSTRUCTION_TEMPLATES: dict[str, str] = {
    "CODE_GENERATION": (
        "Write complete, working code for the request below. "
        "Return each file in its own fenced code block labelled with its language."
    ),
    "CODE_REVIEW": "Review the code below. Point out bugs, risky patterns and readability problems, most severe first.",
    "DEBUGGING": "Find the cause of the problem described below and return a corrected version of the affected code.",
    "REFACTORING": "Refactor the code below without changing its behaviour. Keep public names stable.",
    "EXPLANATION": "Explain what the code below does, step by step, for a reader new to the codebase.",
}

DEFAULT_USER_PREFERENCES = UserPreferences()

USER_PREFERENCE_PRESETS: dict[str, UserPreferences] = {
    "DEVELOPER": UserPreferences(
        tone=ResponseTone.TECHNICAL,
        format=ResponseFormat.CODE_FOCUSED,
        include_explanations=True,
        include_examples=True,
    ),
    "BEGINNER": UserPreferences(
        tone=ResponseTone.FRIENDLY,
        format=ResponseFormat.STEP_BY_STEP,
        include_explanations=True,
        include_examples=True,
    ),
    "PROFESSIONAL": UserPreferences(
        tone=ResponseTone.PROFESSIONAL,
        format=ResponseFormat.STRUCTURED,
        include_explanations=True,
        include_examples=False,
    ),
    "CASUAL": UserPreferences(
        tone=ResponseTone.CASUAL,
        format=ResponseFormat.CONVERSATIONAL,
        include_explanations=False,
        include_examples=True,
    ),
}
