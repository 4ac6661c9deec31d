"""SmartGrade: grade scanned exams against an answer key with a multimodal LLM."""

__version__ = "0.1.0"
