from .input import TextInputNodeExecutor, FileInputNodeExecutor
from .process import TextTransformNodeExecutor, DataFilterNodeExecutor
from .ai import TextGenerationNodeExecutor, TextAnalysisNodeExecutor
from .tool import HttpRequestNodeExecutor, EmailSendNodeExecutor
from .control import ConditionNodeExecutor, LoopNodeExecutor
from .output import DisplayNodeExecutor, FileSaveNodeExecutor

__all__ = [
    "TextInputNodeExecutor",
    "FileInputNodeExecutor",
    "TextTransformNodeExecutor",
    "DataFilterNodeExecutor",
    "TextGenerationNodeExecutor",
    "TextAnalysisNodeExecutor",
    "HttpRequestNodeExecutor",
    "EmailSendNodeExecutor",
    "ConditionNodeExecutor",
    "LoopNodeExecutor",
    "DisplayNodeExecutor",
    "FileSaveNodeExecutor",
]
