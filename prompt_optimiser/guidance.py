"""Per-vendor prompting guidance.

Static reference data fed into generation prompts as context. Each vendor
entry lists its model variants (the first one is the default) and the
best practices, anti-patterns and structure template the generator should
follow when targeting it.

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BestPractice:
    rule: str
    description: str
    example: str | None = None


@dataclass(frozen=True)
class VendorGuidance:
    """Guidance table for one model vendor."""

    key: str
    name: str
    models: tuple[str, ...]
    context_window: str
    last_updated: str
    source: str
    best_practices: tuple[BestPractice, ...] = ()
    anti_patterns: tuple[str, ...] = ()
    formatting_preferences: tuple[str, ...] = ()
    structure_template: str = ""
    knowledge_cutoff: str | None = None

    @property
    def default_model(self) -> str:
        return self.models[0]


GUIDANCE: dict[str, VendorGuidance] = {
    "claude": VendorGuidance(
        key="claude",
        name="Claude",
        models=("Opus 4.5", "Sonnet 4.5", "Haiku 4.5"),
        context_window="200K tokens",
        last_updated="December 2025",
        knowledge_cutoff="May 2025",
        source="https://platform.claude.com/docs/en/build-with-claude/prompt-engineering/overview",
        best_practices=(
            BestPractice(
                "Be explicitly instructional",
                "State depth and scope directly; the model does what is asked and no more.",
                "Refactor this code to: 1) extract validation, 2) handle null inputs.",
            ),
            BestPractice(
                "Provide context and motivation",
                "Explain why the task matters, who the audience is and how output is used.",
            ),
            BestPractice(
                "Use XML tags for structure",
                "Separate <context>, <instructions>, <examples> and <output_format> sections.",
            ),
            BestPractice(
                "Use positive instructions",
                "Say what to do rather than what to avoid.",
                "Instead of 'Do not use markdown', say 'Write in flowing paragraphs.'",
            ),
        ),
        anti_patterns=(
            "Negative constraints instead of positive framing",
            "Raw user input without tag separation",
            "Vague requests expecting the model to infer depth",
        ),
        formatting_preferences=(
            "Prefer minimal formatting unless requested",
            "Match prompt style to desired output style",
        ),
        structure_template=(
            "<role>\nYou are [role]. Your goal is [objective].\n</role>\n\n"
            "<context>\n[Background]\n</context>\n\n"
            "<instructions>\n[Steps]\n</instructions>\n\n"
            "<output_format>\n[Format]\n</output_format>"
        ),
    ),
    "gpt": VendorGuidance(
        key="gpt",
        name="GPT-5.2",
        models=("Instant", "Thinking", "Pro"),
        context_window="400K tokens",
        last_updated="December 2025",
        source="https://platform.openai.com/docs/guides/prompt-engineering",
        best_practices=(
            BestPractice(
                "Put instructions first",
                "Lead with the task, then separate supporting material with delimiters.",
            ),
            BestPractice(
                "Specify the output contract",
                "Describe length, format and schema precisely; reasoning models follow contracts literally.",
            ),
            BestPractice(
                "Avoid redundant reasoning cues",
                "Thinking variants reason internally; use reasoning effort settings instead of 'think step by step'.",
            ),
        ),
        anti_patterns=(
            "Conflicting instructions across sections",
            "'Think step by step' with reasoning models",
        ),
        formatting_preferences=(
            "Markdown headings and lists are well supported",
        ),
        structure_template=(
            "# Role and objective\n\n# Instructions\n\n# Context\n\n# Output format"
        ),
    ),
    "gemini": VendorGuidance(
        key="gemini",
        name="Gemini 3",
        models=("Pro", "Flash", "Deep Think"),
        context_window="1M tokens",
        last_updated="December 2025",
        source="https://ai.google.dev/gemini-api/docs/prompting-strategies",
        best_practices=(
            BestPractice(
                "Be concise and direct",
                "Gemini 3 favours short, precise instructions over persuasive prose.",
            ),
            BestPractice(
                "Place long context first",
                "Put documents before the question and anchor the question to them.",
            ),
            BestPractice(
                "Use thinking level, not prompt tricks",
                "Built-in reasoning is configured through parameters.",
            ),
        ),
        anti_patterns=(
            "'Think step by step' phrasing (redundant)",
            "Overly verbose prompt engineering patterns from older models",
        ),
        formatting_preferences=(
            "Consistent delimiters (XML or markdown), not mixed",
        ),
        structure_template="<role>\n</role>\n<context>\n</context>\n<task>\n</task>",
    ),
    "copilot": VendorGuidance(
        key="copilot",
        name="Microsoft Copilot",
        models=("GPT-5.2 (primary)", "GPT-5 (default)", "GPT-4.1 (fallback)"),
        context_window="Varies by surface",
        last_updated="December 2025",
        source="https://support.microsoft.com/copilot",
        best_practices=(
            BestPractice(
                "Goal, context, expectations, source",
                "State the goal, give context, set expectations and name the source files.",
            ),
            BestPractice(
                "Reference files explicitly",
                "Use the / command to point at the exact documents to ground on.",
            ),
        ),
        anti_patterns=(
            "Asking about documents without referencing them",
        ),
        formatting_preferences=(
            "Short prompts with explicit deliverables",
        ),
        structure_template="Goal:\nContext:\nExpectations:\nSource:",
    ),
}


def default_model(vendor: str) -> str:
    """First listed model for a vendor.

    Raises:
        KeyError: Unknown vendor.
    """
    return GUIDANCE[vendor].default_model


def render_guidance(guidance: VendorGuidance) -> str:
    """Render guidance as markdown for inclusion in a prompt."""
    lines = [
        f"# {guidance.name} Prompting Guidance",
        "",
        f"**Models:** {', '.join(guidance.models)}",
        f"**Context Window:** {guidance.context_window}",
        f"**Last Updated:** {guidance.last_updated}",
    ]
    if guidance.knowledge_cutoff:
        lines.append(f"**Knowledge Cutoff:** {guidance.knowledge_cutoff}")
    lines += [f"**Source:** {guidance.source}", "", "## Best Practices", ""]

    for index, practice in enumerate(guidance.best_practices, start=1):
        lines.append(f"{index}. **{practice.rule}**")
        lines.append(f"   {practice.description}")
        if practice.example:
            lines.append(f"   Example: {practice.example}")
        lines.append("")

    lines += ["## Anti-Patterns to Avoid", ""]
    lines += [f"- {pattern}" for pattern in guidance.anti_patterns]
    lines += ["", "## Formatting Preferences", ""]
    lines += [f"- {pref}" for pref in guidance.formatting_preferences]
    lines += ["", "## Recommended Structure Template", "", "```", guidance.structure_template, "```"]

    return "\n".join(lines) + "\n"
