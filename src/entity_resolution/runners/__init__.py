from entity_resolution.runners.local import LocalResolutionPipeline, resolve_batch, resolve_batches

__all__ = ["LocalResolutionPipeline", "resolve_batch", "resolve_batches"]
