from __future__ import annotations

TRUNCATION_MARKER = "... [transcript truncated]"

QUIZ_SYSTEM = """You are an expert educator. Given a video transcript, generate a quiz to test comprehension.

RULES:
- Generate exactly {count} multiple-choice questions
- Each question must have exactly 4 options
- Questions should test understanding, not just memory
- Include a mix of difficulty levels
- Provide clear, educational explanations for each answer
- Return ONLY valid JSON, no markdown or extra text

Return JSON in this exact format:
{{
  "questions": [
    {{
      "question": "What is the main concept discussed?",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correctAnswer": 0,
      "explanation": "Option A is correct because..."
    }}
  ]
}}"""

STUDY_MATERIAL_SYSTEM = """You are an expert learning designer and instructional writer.

You will be given a YouTube video transcript.
Hard rules:
- Do NOT dump the transcript; paraphrase, abstract and re-structure.
- Ignore stage directions like [Music], [Laughter], filler, repeated caption artifacts.
- Be faithful to meaning; do not invent facts.
"""

STUDY_MATERIAL_INSTRUCTIONS = {
    "summary": """Write a clear, well-structured summary of the video in Markdown.
- Start with a one-paragraph overview.
- Follow with the key points as a bulleted list.
- End with a short "Key takeaway" line.
Return the Markdown only.""",
    "studyGuide": """Write a study guide for this video in Markdown with these sections:
## Learning objectives
## Key concepts (term: definition)
## Detailed notes
## Review questions
Return the Markdown only.""",
    "roadmap": """Write a learning roadmap in Markdown for someone who wants to master the topic of this video.
- Organize it into numbered stages from beginner to advanced.
- For each stage list the concepts to learn and a practical exercise.
- Point out which stages this video already covers.
Return the Markdown only.""",
    "mindMap": """Build a mind map of the video's concepts.
Return ONLY valid JSON, no markdown, in this exact shape:
{
  "label": "Central topic",
  "children": [
    {"label": "Subtopic", "children": [{"label": "Detail", "children": []}]}
  ]
}
Use 3-7 first-level branches and at most 4 levels in total. Labels must be short (<= 8 words).""",
    "flashcards": """Create 10-20 flashcards that test understanding (why/how/what) of the video.
Return ONLY valid JSON, no markdown, in this exact shape:
{
  "flashcards": [
    {"front": "Question or term", "back": "Answer in 1-3 sentences"}
  ]
}""",
}

STUDY_MATERIAL_USER_TEMPLATE = """{instructions}

TRANSCRIPT:
{transcript}"""

CHAT_SYSTEM_TEMPLATE = """You are a helpful study assistant. The user is learning from a YouTube video.
Answer questions using the video transcript below. If the transcript does not cover
something, say so and then answer from general knowledge, making the distinction clear.
Keep answers focused and use Markdown where it helps readability.

VIDEO TRANSCRIPT:
{transcript}"""


def truncate_transcript(transcript: str, max_chars: int = 15000) -> str:
    """Cap prompt size at a fixed prefix so it does not depend on the backend."""
    text = transcript or ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def build_quiz_prompt(transcript: str, count: int, max_chars: int = 15000) -> str:
    system = QUIZ_SYSTEM.format(count=count)
    return f"{system}\n\nTRANSCRIPT:\n{truncate_transcript(transcript, max_chars)}"


def build_study_material_prompt(kind: str, transcript: str, max_chars: int = 15000) -> str:
    return STUDY_MATERIAL_USER_TEMPLATE.format(
        instructions=STUDY_MATERIAL_INSTRUCTIONS[kind],
        transcript=truncate_transcript(transcript, max_chars),
    )


def build_chat_system(transcript: str, max_chars: int = 15000) -> str:
    return CHAT_SYSTEM_TEMPLATE.format(transcript=truncate_transcript(transcript, max_chars))
