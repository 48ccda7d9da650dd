"""
Video frame extraction and similarity search package.

Modules:
- config: configuration for paths, extraction, histograms and the vector store.
- errors: error kinds shared by every stage.
- models: video and frame records.
- video_extractor: fixed-interval frame extraction via ffmpeg.
- features: RGB color-histogram frame descriptors.
- similarity: cosine similarity and ranking.
- store: Qdrant-backed vector store with in-memory fallback.
- pipeline: ingestion and similarity query coordinator.
- cli: command-line interface entrypoint.
"""
