from hookreel.render.audio_mixer import AudioMixer, MusicBed
from hookreel.render.pipeline import CompositionPipeline, RenderArtifacts, RenderProfile
from hookreel.render.stage_runner import StageInvocation, StageResult, StageRunner
from hookreel.render.text_layout import TextLayout, layout_hook_text

__all__ = [
    "AudioMixer",
    "CompositionPipeline",
    "MusicBed",
    "RenderArtifacts",
    "RenderProfile",
    "StageInvocation",
    "StageResult",
    "StageRunner",
    "TextLayout",
    "layout_hook_text",
]
