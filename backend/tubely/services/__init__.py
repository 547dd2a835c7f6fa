"""
Services module for the Tubely backend application.

This package contains the business logic of the upload pipeline:

- upload_service: UploadPipeline orchestrating one upload request end to end
- staging: Copying inbound streams into scoped temporary files
- media_tools: ffmpeg/ffprobe invocation behind the MediaToolRunner interface
- video_processing: Fast-start normalization and aspect ratio classification
- placement: Pure storage key routing
- storage_service: S3-compatible and local blob stores
- video_repository: VideoRecord persistence in MongoDB

All services follow async patterns for non-blocking operations and are
designed for dependency injection through FastAPI's dependency system.
"""
