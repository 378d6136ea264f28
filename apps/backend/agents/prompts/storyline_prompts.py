"""
Storyline Agent Prompts

Prompts sent to the custom agents that regenerate storylines, write section
slides and recommend market sizing layouts.
"""

import json
from typing import Any, Dict, List, Optional


def _joined(values: List[Any]) -> str:
    parts = [str(v).strip() for v in values or [] if str(v).strip()]
    return " | ".join(parts) if parts else "None provided"


def get_slide_generation_prompt(section: Dict[str, Any], storyline: Dict[str, Any], layout: str) -> str:
    """Prompt for the slide agent; asks for a JSON object with a `slides` array."""
    blocks = [
        item
        for block in section.get('contentBlocks') or []
        for item in (block.get('items') or [] if isinstance(block, dict) else [])
    ]

    return f"""You are a senior presentation designer. Generate concise, executive-ready slide content for the following section.

Section Title: {section.get('title') or 'Untitled Section'}
Section Description: {section.get('description') or 'Not provided'}
Preferred Layout: {layout}
Storyline Title: {(storyline or {}).get('title') or 'Project Storyline'}
Key Points: {_joined(section.get('keyPoints'))}
Content Blocks: {_joined(blocks)}

Return JSON with a "slides" array. Each slide must include:
- title (string)
- optional subtitle (string)
- summary (2 sentences max)
- bullets (array of 3-5 bullet strings)
- optional notes (speaker notes or design guidance)
- optional layout identifier if certain design is recommended
"""


def get_regeneration_prompt(payload: Dict[str, Any]) -> str:
    """Prompt for the storyline agent. Locked sections are context only."""
    deliverable = payload.get('deliverable') or {}
    locked = payload.get('existingLockedSections') or []
    drafts = payload.get('draftSections') or []
    instructions = payload.get('instructions')

    locked_lines = "\n".join(
        f"- [{s.get('order')}] {s.get('title')} (id: {s.get('id')}): {_joined(s.get('keyPoints'))}"
        for s in locked
    ) or "- None"

    draft_lines = "\n".join(
        f"- [{s.get('order')}] {s.get('title')} (id: {s.get('id')}, framework: {s.get('framework') or 'none'})"
        for s in drafts
    )

    prompt = f"""You are regenerating a consulting storyline for "{deliverable.get('name') or 'Untitled Storyline'}".

Type: {deliverable.get('type') or 'Strategic Analysis'}
Brief: {deliverable.get('brief') or 'Strategic storyline regeneration'}
Format: {deliverable.get('format') or 'consulting'}
Estimated length: {deliverable.get('documentLength') or 'n/a'} pages

LOCKED SECTIONS (do not rewrite, keep the narrative consistent with them):
{locked_lines}

SECTIONS TO REGENERATE:
{draft_lines}

Return JSON with a "sections" array containing one object per section to regenerate.
Keep each section's "id". Each section must include title, description, keyPoints (array of strings)
and may include contentBlocks, charts, insights and citations.
Optionally include executiveSummary, presentationFlow and callToAction for the whole storyline.
Only respond with valid JSON."""

    if instructions:
        prompt += f"\n\nADDITIONAL INSTRUCTIONS:\n{instructions}"
    return prompt


def get_design_suggestion_prompt(section: Dict[str, Any], specialist_output: Optional[Any] = None) -> str:
    """Prompt for the market sizing design agent."""
    try:
        specialist_json = json.dumps(specialist_output if specialist_output is not None else section, indent=2, default=str)
    except (TypeError, ValueError):
        specialist_json = json.dumps({'warning': 'Unable to serialize market sizing data'})

    return f"""You are the dedicated design agent for market sizing slides.

Analyze the provided section data and return a JSON response containing:

- "section": the enhanced section content using the same schema as the input, preserving keys like title, description, keyPoints, charts, slides, etc.
- "layoutRecommendation": an object with "id", "name", and "reason" describing the recommended layout identifier.
- Optional "designGuidelines": array of bullet suggestions for the designer.

Only respond with valid JSON.

Here is the Market Sizing Specialist output to guide your recommendation. Use it to craft an appropriate visual layout recommendation.

MARKET_SIZING_SPECIALIST_OUTPUT_JSON:
{specialist_json}"""
