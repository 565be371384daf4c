"""Prompt sent with every vision description request."""

VISION_DESCRIPTION_PROMPT = (
    "Describe the image in 2-3 bullet points, focusing on structure, "
    "relationships, and labels relevant for grading. Mention any handwriting, "
    "diagrams, charts, or equations and what they show. Do not grade the work."
)
