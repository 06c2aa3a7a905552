"""
提取器公共部分

提取器之间没有共享的可变基类状态，只共享能力接口和两个纯函数：
失败结果的构造和长度上限的执行。
"""

from typing import Any, Protocol, Tuple

from ..models import ExtractionSource, TextExtractionResult


class TextExtractor(Protocol):
    """全文提取能力接口：HTML 和 PDF 两种实现由数据源按位置类型选择"""

    def extract_text(self, url: str) -> TextExtractionResult:
        ...


def failed_result(**metadata: Any) -> TextExtractionResult:
    """构造失败结果，metadata 记录失败原因等辅助信息"""
    return TextExtractionResult(
        text="",
        truncated=False,
        extraction_success=False,
        source=ExtractionSource.FAILED,
        metadata=dict(metadata),
    )


def enforce_length(text: str, max_length: int) -> Tuple[str, bool]:
    """
    执行长度上限。

    超长时先硬截断到 max_length，若最后一个空格位于后10%之内则在空格处截断，
    否则保留硬截断结果。

    参数:
        text: 已清洗的文本
        max_length: 最大字符数

    返回:
        (text, truncated)
    """
    if len(text) <= max_length:
        return text, False

    truncated_text = text[:max_length]
    last_space = truncated_text.rfind(" ")
    if last_space > max_length * 0.9:
        truncated_text = truncated_text[:last_space]

    return truncated_text, True
