# ================================================================
# Prompt Optimiser - Instruction Templates
# Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
# ================================================================

"""
System prompts and user messages for each analysis mode.

Kept apart from the orchestrator so the wording can be tuned without
touching request handling. Every template asks for bare JSON; the
extractor copes when the model ignores that.
"""

from __future__ import annotations

from enum import Enum


class Mode(str, Enum):
    """Supported analysis modes."""

    CRITIQUE = "critique"
    OPTIMISE = "optimise"
    GENERATE = "generate"


SUPPORTED_MODES = tuple(m.value for m in Mode)

# ================================================================
# Critique
# ================================================================

CRITIQUE_PROBLEM_SECTION = """
THE USER HAS TOLD YOU WHAT IS NOT WORKING:
"{problem_context}"

Treat this as the most important context. Your questions must:
1. Target the issues they have identified
2. Avoid suggesting anything that would repeat those issues
3. Probe the root cause of why the current approach fails
4. Help them describe what "working" looks like
"""

CRITIQUE_PROMPT = """You are a rigorous thinking partner. Critique an idea or prompt BEFORE it is built: find the gaps, question the assumptions, and ask the questions the user should be asking themselves.

{entry_context}
{problem_section}
Be direct and specific. Skip pleasantries.

EXAMINE THE INPUT FOR:
1. Unclear intent
2. Missing audience
3. Unstated assumptions
4. Unhandled edge cases
5. Context gaps that would change the approach
6. Scope problems
7. Output format mismatch
8. Unmentioned constraints (time, length, tone, technical limits)

Tailor every question to this specific input. Keep each answerable in one or two sentences. Do not write the prompt for them and do not offer generic advice.

OUTPUT FORMAT (respond with valid JSON only, no markdown code blocks):
{{
  "overallAssessment": "One sentence naming the main gap or problem",
  "questions": [
    {{
      "id": "q1",
      "question": "Specific question they need to answer",
      "why": "What goes wrong if this is left unaddressed",
      "category": "audience|intent|scope|constraints|edge_cases|assumptions|format"
    }}
  ],
  "concerns": [
    "A flaw they should know about that is not a question"
  ]
}}

Return 3-7 questions, most important first."""

# ================================================================
# Optimise
# ================================================================

OPTIMISE_PROMPT = """You are a prompt engineering specialist. Analyse an existing prompt and either optimise it or rebuild it from scratch, depending on its quality.

{additional_section}{problem_section}GUIDELINES FOR {vendor_upper}:
{guidance}

TRIAGE FIRST. Score the prompt 1-10 for clarity, structure and adherence to the guidelines.
- 1-4: too vague to polish. Treat it as a rough idea and rebuild it with {vendor_name} best practices. Set "action" to "rebuilt".
- 5-7: sound foundation. Fix guideline violations. Set "action" to "optimised".
- 8-10: already strong. Suggest minor changes at most. Set "action" to "optimised".

When optimising, preserve the user's voice and keep simple prompts simple.
When rebuilding, extract the core intent and state every assumption you make.

OUTPUT FORMAT (respond with valid JSON only, no markdown code blocks):
{{
  "currentScore": 4,
  "action": "rebuilt",
  "reason": "Why you rebuilt or optimised",
  "optimisedPrompt": "The improved or rebuilt prompt",
  "changes": [
    {{"severity": "HIGH", "change": "What changed", "reason": "Why it helps", "guideline": "Guideline addressed"}}
  ],
  "assumptions": [
    {{"assumption": "What you assumed", "reason": "Why it is reasonable"}}
  ],
  "notChanged": ["What was preserved from the original"],
  "summary": "One sentence describing what was done"
}}"""

# ================================================================
# Generate
# ================================================================

GENERATE_PROMPT = """You are a prompt engineering specialist. Turn a rough idea into a well-structured prompt optimised for {vendor_name} ({model}).

{additional_section}{problem_section}GUIDELINES FOR {vendor_upper}:
{guidance}

APPROACH:
1. Work out the user's intent from their idea
2. Fill gaps with the answers they provided
3. Structure the prompt following {vendor_name} best practices
4. Add context, constraints and an output format specification
5. Keep it proportional: a simple task does not need a long prompt

Prefer what the user told you over assumptions. Where they answered a question, use the answer directly. Where they did not, make a reasonable assumption and flag it.

OUTPUT FORMAT (respond with valid JSON only, no markdown code blocks):
{{
  "generatedPrompt": "The full structured prompt",
  "assumptions": [
    {{"assumption": "What you assumed (only for things not answered)", "reason": "Why it is reasonable"}}
  ],
  "structure": [
    {{"section": "Section name", "purpose": "Why it is included"}}
  ],
  "suggestions": ["Optional improvements the user could add"],
  "summary": "One sentence describing what this prompt achieves"
}}"""

IDEA_ENTRY = "The user has a rough idea they want to turn into a prompt."
PROMPT_ENTRY = "The user has an existing prompt they want to improve."


def _additional_section(additional_context: str) -> str:
    if not additional_context:
        return ""
    return f"ADDITIONAL CONTEXT FROM USER:\n{additional_context}\n\n"


def build_system_prompt(
    mode: str,
    vendor_name: str,
    model: str,
    guidance: str,
    additional_context: str = "",
    entry_mode: str = "idea",
    problem_context: str = "",
) -> str:
    """Compose the system instruction for a mode.

    Raises:
        ValueError: Unsupported mode.
    """
    mode = Mode(mode)

    if mode is Mode.CRITIQUE:
        problem_section = (
            CRITIQUE_PROBLEM_SECTION.format(problem_context=problem_context)
            if problem_context
            else ""
        )
        return CRITIQUE_PROMPT.format(
            entry_context=PROMPT_ENTRY if entry_mode == "prompt" else IDEA_ENTRY,
            problem_section=problem_section,
        )

    if mode is Mode.OPTIMISE:
        problem_section = (
            "PROBLEMS THE USER IDENTIFIED WITH THEIR CURRENT APPROACH:\n"
            f"{problem_context}\n\nMake sure your output addresses these issues.\n\n"
            if problem_context
            else ""
        )
        return OPTIMISE_PROMPT.format(
            additional_section=_additional_section(additional_context),
            problem_section=problem_section,
            vendor_name=vendor_name,
            vendor_upper=vendor_name.upper(),
            guidance=guidance,
        )

    problem_section = (
        "PROBLEMS TO AVOID (from the user's previous attempts):\n"
        f"{problem_context}\n\nMake sure the prompt prevents these issues.\n\n"
        if problem_context
        else ""
    )
    return GENERATE_PROMPT.format(
        additional_section=_additional_section(additional_context),
        problem_section=problem_section,
        vendor_name=vendor_name,
        vendor_upper=vendor_name.upper(),
        model=model,
        guidance=guidance,
    )


def build_user_message(
    mode: str,
    vendor_name: str,
    model: str,
    input_text: str,
    entry_mode: str = "idea",
) -> str:
    """Compose the user turn for a mode."""
    mode = Mode(mode)

    if mode is Mode.CRITIQUE:
        subject = "prompt" if entry_mode == "prompt" else "idea"
        return f"Critique this {subject} and identify what's missing or problematic:\n\n{input_text}"
    if mode is Mode.OPTIMISE:
        return f"Analyse and optimise this prompt for {vendor_name} ({model}):\n\n{input_text}"
    return f"Create a well-structured {vendor_name} ({model}) prompt from this idea:\n\n{input_text}"
