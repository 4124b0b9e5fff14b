"""vidstudy: turn video transcripts into quizzes, study materials and chat."""

__version__ = "0.1.0"
