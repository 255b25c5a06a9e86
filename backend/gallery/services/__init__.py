"""
Services module for the gallery pipeline.

Business logic services that coordinate the database operations and the
blob store. Services are imported from their modules directly so that the
database layer can use the logger package without import cycles.

Available Services:
- PathResolver: Blob root confinement for every filesystem path
- FileValidator: Upload validation (size, type, magic number, dimensions)
- Slug generation: random photo slugs and text place slugs
- ThumbnailEngine / OgImageGenerator: derived artifacts (thumbnail_pipeline/)
- ThumbnailJobService: Best-effort job queueing
- PlaceService: Place lifecycle with its directory
- UploadPipeline: Batch upload and photo mutations
- OrphanReconciler: Blob store garbage collection
- MaintenanceService: Operational sweeps (retries, backfills)
"""
