import json5  # 用于加载带注释的配置文件
from pathlib import Path
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 1. 定义基础路径：获取当前脚本所在目录作为项目根目录
PROJECT_ROOT = Path(__file__).resolve().parent


class CleaningOptions(BaseModel):
    """
    文本清洗选项，决定 TextCleaner 执行哪些步骤。

    属性:
        remove_extra_whitespace: 制表符转空格、合并连续空格、去除行首尾空白
        remove_special_chars: 去除白名单以外的特殊字符（科研内容默认保留）
        normalize_line_breaks: 统一换行符并把3个以上连续换行压缩为一个空行
    """
    remove_extra_whitespace: bool = True
    remove_special_chars: bool = False
    normalize_line_breaks: bool = True


class ExtractionConfig(BaseModel):
    """
    全文提取配置，进程级只读，启动后注入各提取器。

    属性:
        max_text_length: 正文最大字符数（6MB，为8MB响应中的元数据留出余量）
        enable_arxiv_fallback: arXiv HTML 失败时是否回退到 ar5iv 镜像
        enable_openalex_extraction: 是否对通用网页（OpenAlex等）做HTML提取
        enable_pdf_extraction: 是否允许走PDF提取路径
        cleaning_options: 文本清洗选项
    """
    max_text_length: int = 6 * 1024 * 1024
    enable_arxiv_fallback: bool = True
    enable_openalex_extraction: bool = True
    enable_pdf_extraction: bool = True
    cleaning_options: CleaningOptions = Field(default_factory=CleaningOptions)


class PdfExtractionOptions(BaseModel):
    """
    PDF 提取管线参数。

    属性:
        max_size_mb: 硬性大小上限，探测超过即放弃，下载时同样按此截断
        confirm_threshold_mb: 超过此大小需要调用方确认
        max_pages: 最多解析的页数，多余页静默忽略
        timeout_seconds: 下载超时时间
        large_text_threshold: 清洗后文本超过该长度时附加上下文预算提示
        require_confirmation: 是否启用确认闸门
        interactive: 是否存在可以应答确认请求的调用方
    """
    max_size_mb: float = 50
    confirm_threshold_mb: float = 10
    max_pages: int = 100
    timeout_seconds: float = 120
    large_text_threshold: int = 2_000_000
    require_confirmation: bool = True
    interactive: bool = False


class RateLimitConfig(BaseModel):
    """单个数据源的令牌桶参数"""
    max_tokens: int
    refill_rate: float  # 每秒补充的令牌数


class NetworkConfig(BaseModel):
    """
    网络请求配置。元数据/分类请求的超时短于正文与二进制下载。
    """
    metadata_timeout: float = 15
    category_timeout: float = 10
    html_timeout: float = 10
    head_timeout: float = 10
    max_retries: int = 2
    backoff_base_seconds: float = 1.0
    user_agent: str = "PaperHarvester/1.0 (mailto:contact@paperharvester.org)"
    polite_pool_email: str = "contact@paperharvester.org"


def default_rate_limits() -> Dict[str, RateLimitConfig]:
    return {
        "arxiv": RateLimitConfig(max_tokens=5, refill_rate=5 / 60),  # arXiv 建议每分钟5次
        "openalex": RateLimitConfig(max_tokens=10, refill_rate=10),  # 礼貌池每秒10次
        "europepmc": RateLimitConfig(max_tokens=10, refill_rate=10),
        "biorxiv": RateLimitConfig(max_tokens=5, refill_rate=1),
        "pmc": RateLimitConfig(max_tokens=3, refill_rate=3),  # E-utilities 无 API key 时每秒3次
        "core": RateLimitConfig(max_tokens=5, refill_rate=5 / 60),  # CORE 公共额度
        # DOI 解析链，每个服务独立的令牌桶
        "unpaywall": RateLimitConfig(max_tokens=10, refill_rate=10 / 60),
        "crossref": RateLimitConfig(max_tokens=10, refill_rate=10),
        "semanticscholar": RateLimitConfig(max_tokens=10, refill_rate=100 / 60),
    }


class Settings(BaseSettings):
    """
    系统全局配置类，集中管理所有应用配置参数。

    优先级：harvest_config.json > .env文件 > 默认值
    """
    # ==================== 路径配置 ====================
    PROJECT_ROOT: Path = PROJECT_ROOT
    LOG_DIR: Path = PROJECT_ROOT / "logs"
    LOG_LEVEL: str = "INFO"

    # ==================== 默认参数 ====================
    DEFAULT_PAPER_COUNT: int = 50
    MAX_PAPER_COUNT: int = 200
    MAX_RESPONSE_SIZE: int = 8 * 1024 * 1024  # 8MB

    # ==================== 提取配置 ====================
    EXTRACTION: ExtractionConfig = Field(default_factory=ExtractionConfig)
    PDF: PdfExtractionOptions = Field(default_factory=PdfExtractionOptions)

    # ==================== 速率与网络 ====================
    RATE_LIMITS: Dict[str, RateLimitConfig] = Field(default_factory=default_rate_limits)
    NETWORK: NetworkConfig = Field(default_factory=NetworkConfig)

    # ==================== 演示运行配置（main.py） ====================
    DEMO_SOURCES: List[str] = ["arxiv"]
    DEMO_CATEGORIES: Dict[str, str] = {
        "arxiv": "cs.AI", "openalex": "computer science", "pmc": "genetics", "core": "computer_science"
    }
    DEMO_COUNT: int = 10
    DEMO_FETCH_CONTENT: bool = True

    # ==================== Pydantic Settings配置 ====================
    # 指定从.env文件加载配置，支持嵌套参数用双下划线分隔
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # 嵌套配置使用__分隔符，如EXTRACTION__MAX_TEXT_LENGTH
        extra="ignore"  # 忽略.env中未定义的额外参数
    )

    def load_from_harvest_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        从 harvest_config.json 加载配置并覆盖默认值。

        参数:
            config_path: 配置文件路径，默认为 PROJECT_ROOT/harvest_config.json

        返回:
            dict: 配置字典
        """
        if config_path is None:
            config_path = self.PROJECT_ROOT / "harvest_config.json"

        if not config_path.exists():
            print(f"警告: 未找到配置文件 {config_path}，使用默认配置")
            return {}

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json5.load(f)  # 使用json5支持注释

            # 加载默认参数
            if "defaults" in config:
                defaults = config["defaults"]
                self.DEFAULT_PAPER_COUNT = defaults.get("paper_count", self.DEFAULT_PAPER_COUNT)
                self.MAX_PAPER_COUNT = defaults.get("max_paper_count", self.MAX_PAPER_COUNT)
                self.MAX_RESPONSE_SIZE = defaults.get("max_response_size", self.MAX_RESPONSE_SIZE)

            # 加载提取配置
            if "extraction" in config:
                ext = config["extraction"]
                cleaning = ext.get("cleaning_options", {})
                self.EXTRACTION = ExtractionConfig(
                    max_text_length=ext.get("max_text_length", self.EXTRACTION.max_text_length),
                    enable_arxiv_fallback=ext.get("enable_arxiv_fallback", self.EXTRACTION.enable_arxiv_fallback),
                    enable_openalex_extraction=ext.get(
                        "enable_openalex_extraction", self.EXTRACTION.enable_openalex_extraction
                    ),
                    enable_pdf_extraction=ext.get("enable_pdf_extraction", self.EXTRACTION.enable_pdf_extraction),
                    cleaning_options=self.EXTRACTION.cleaning_options.model_copy(update=cleaning),
                )

            # 加载PDF配置
            if "pdf" in config:
                self.PDF = self.PDF.model_copy(update=config["pdf"])

            # 加载速率限制（只覆盖给出的数据源）
            if "rate_limits" in config:
                limits = dict(self.RATE_LIMITS)
                for source, cfg in config["rate_limits"].items():
                    limits[source] = RateLimitConfig(**cfg)
                self.RATE_LIMITS = limits

            # 加载网络配置
            if "network" in config:
                self.NETWORK = self.NETWORK.model_copy(update=config["network"])

            self.LOG_LEVEL = config.get("log_level", self.LOG_LEVEL)

            # 加载演示运行配置
            if "demo" in config:
                demo = config["demo"]
                self.DEMO_SOURCES = demo.get("sources", self.DEMO_SOURCES)
                self.DEMO_CATEGORIES = demo.get("categories", self.DEMO_CATEGORIES)
                self.DEMO_COUNT = demo.get("count", self.DEMO_COUNT)
                self.DEMO_FETCH_CONTENT = demo.get("fetch_content", self.DEMO_FETCH_CONTENT)

            return config

        except Exception as e:
            print(f"加载 harvest_config.json 失败: {e}")
            import traceback
            traceback.print_exc()
            return {}


# 实例化全局配置单例对象，应用程序全局共享
settings = Settings()

# 从 harvest_config.json 加载配置（会覆盖默认值）
settings.load_from_harvest_config()
