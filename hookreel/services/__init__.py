from hookreel.services.clip_library import ClipLibrary
from hookreel.services.render_service import RenderService, build_render_service, parse_batch_request

__all__ = ["ClipLibrary", "RenderService", "build_render_service", "parse_batch_request"]
