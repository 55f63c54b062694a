"""
Document Processing Package
════════════════════════════

Post-upload pipeline:

  OCR → Object storage (file + images) → Chunking → Embedding → Dual vector write

Modules
───────
  client.py     OCR + embedding calls over an OpenAI-compatible provider
  chunking.py   Word-bounded chunker (≈500 characters per chunk)
  pipeline.py   DocumentPipeline, the per-document state machine
"""

from docuai.processing.chunking import split_into_chunks
from docuai.processing.client import DocumentAIClient, OcrImage, OcrResult, ProviderError
from docuai.processing.pipeline import DocumentPipeline, PipelineJob

__all__ = [
    "DocumentAIClient",
    "DocumentPipeline",
    "OcrImage",
    "OcrResult",
    "PipelineJob",
    "ProviderError",
    "split_into_chunks",
]
