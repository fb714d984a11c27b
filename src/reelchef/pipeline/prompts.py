"""Prompt templates for the structuring backend."""

PAGE_PROMPT = """You are an expert chef and data extractor.
Analyze the provided text, screenshot and user comments from a social media post
and extract a structured recipe.

CONTEXT:
- The text contains labelled sources: PRIORITY_CAPTION_DOM, META_DESCRIPTION, JSON_LD and FULL_VISIBLE_BODY.
- Prefer PRIORITY_CAPTION_DOM and FULL_VISIBLE_BODY for ingredients and steps: they hold the full caption.
  META_DESCRIPTION is often truncated.
- The text may be unstructured, full of hashtags, or incomplete.
- The screenshot is the source of truth when the text is blocked.
- Read the USER COMMENTS. When users report corrections (e.g. "bake at 180C not 160C", "add more sugar"),
  add them to "tips".
- Write everything in {language}.

RULES:
- A recipe without preparation steps is incomplete: set "is_incomplete" to true when steps are missing,
  when only ingredients are given, or when the caption says the recipe is in the video.
- If you cannot find a recipe, return empty fields and set "is_incomplete" to true.

Page title: {title}
Source URL: {url}

{comments}

Raw text content:
{text}
"""

VIDEO_PROMPT = """You are an expert chef. Analyze this video (visuals and audio).
Skip intros and focus on the recipe.

Extract the title, every ingredient with its quantity, every preparation step in order,
preparation and cooking times, servings, and any chef tips.
Write everything in {language}.
If the video contains no recipe, return empty fields.

Source URL: {url}
"""


def format_comments(comments: tuple[str, ...] | list[str]) -> str:
    if not comments:
        return "No user comments available."
    lines = "\n".join(f"- {c}" for c in comments)
    return f"USER COMMENTS (tips, warnings or corrections):\n{lines}"
