"""Prompt templates for the semantic relevance check.

The model answers one question about a fetched document: is it actually
about the target show, and if it expresses an opinion, which way does it
lean. Output is a single JSON object.
"""

SENTIMENT_LABELS = ("enthusiastic", "positive", "mixed", "negative", "neutral")

SEMANTIC_CHECK_PROMPT = """Decide whether the text below is about the Broadway show "{subject_title}".

TARGET SHOW: "{subject_title}"

Mark relevant ONLY if the text discusses "{subject_title}" itself: a review,
an audience reaction, reporting on its finances, cast, run or production.

Mark NOT relevant if:
- The text is about a DIFFERENT show by name
- "{subject_title}" is only mentioned in passing (listings, roundups, ads)
- The text is a login page, error page, navigation menu or newsletter form

If relevant, pick the label that best matches the overall opinion:
- enthusiastic: superlatives, must-see, best of the season
- positive: liked it, recommends it
- mixed: clear praise AND clear criticism
- negative: disappointed, not worth it
- neutral: factual reporting with no opinion
Use null for the label when the text is not relevant.

TEXT:
{text}

Respond with a JSON object: {{"relevant": true, "label": "positive"}}"""

STRICT_SCHEMA_NOTE = """
IMPORTANT: You MUST respond with ONLY a JSON object. No other text, no code fences.
The object MUST have exactly these fields:
- "relevant": boolean (true or false, not a string)
- "label": string or null (must be one of: "enthusiastic", "positive", "mixed", "negative", "neutral")

Example response:
{"relevant": false, "label": null}
"""
