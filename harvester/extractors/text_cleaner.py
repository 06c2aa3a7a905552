"""
文本清洗

纯函数式的文本规范化，HTML 和 PDF 提取器共用。
步骤按固定顺序执行：空白规范化 → 换行规范化 → 特殊字符过滤（可选）→ 整体去首尾空白。
对同一输入重复清洗结果不变。
"""

import re

from config import CleaningOptions

# 行首/行尾空白（\r 也视为行边界，保证先清空白后统一换行时仍幂等）
_LEADING_WS_RE = re.compile(r"(?:\A|(?<=[\r\n]))[ \t]+")
_TRAILING_WS_RE = re.compile(r"[ \t]+(?=\r|\n|\Z)")
_MULTI_SPACE_RE = re.compile(r" {2,}")

_EXCESS_BREAKS_RE = re.compile(r"\n{3,}")
_BLANK_LINE_RE = re.compile(r"\n\s*\n")

# 保留字母数字、空白以及科研内容常用的标点和运算符
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s.,;:!?()\[\]{}\"'\-+=<>/%^*]")
_ANY_WS_RE = re.compile(r"\s+")


class TextCleaner:
    """
    可配置的文本清洗器。

    各步骤由 CleaningOptions 开关控制，实例本身无状态。
    """

    def __init__(self, options: CleaningOptions):
        self.options = options

    def clean(self, text: str) -> str:
        """
        清洗文本。

        参数:
            text: 原始文本

        返回:
            str: 清洗后的文本
        """
        if not text:
            return ""

        cleaned = text

        if self.options.remove_extra_whitespace:
            cleaned = self.normalize_whitespace(cleaned)

        if self.options.normalize_line_breaks:
            cleaned = self.normalize_line_breaks(cleaned)

        if self.options.remove_special_chars:
            cleaned = self.remove_special_characters(cleaned)

        return cleaned.strip()

    @staticmethod
    def normalize_whitespace(text: str) -> str:
        """制表符转空格，合并连续空格，去除每行首尾空白"""
        text = text.replace("\t", " ")
        text = _MULTI_SPACE_RE.sub(" ", text)
        text = _LEADING_WS_RE.sub("", text)
        return _TRAILING_WS_RE.sub("", text)

    @staticmethod
    def normalize_line_breaks(text: str) -> str:
        """统一为 \\n，3个以上连续换行压缩为一个空行"""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = _EXCESS_BREAKS_RE.sub("\n\n", text)
        return _BLANK_LINE_RE.sub("\n\n", text)

    @staticmethod
    def remove_special_characters(text: str) -> str:
        """去除白名单外的字符，随后合并产生的多余空白"""
        text = _SPECIAL_CHARS_RE.sub("", text)
        return _ANY_WS_RE.sub(" ", text)
