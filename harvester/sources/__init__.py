"""
论文数据源模块

每个数据源实现统一的 BasePaperSource 接口：
- ArxivSource：arXiv 预印本
- OpenAlexSource：OpenAlex 学术图谱（唯一支持高被引排序）
- PmcSource：PubMed Central 开放获取文献（NCBI E-utilities）
- EuropePmcSource：Europe PMC 生命科学文献
- BioRxivSource：bioRxiv/medRxiv 预印本
- CoreSource：CORE 开放获取聚合
"""

from .base_source import BasePaperSource
from .arxiv_source import ArxivSource
from .openalex_source import OpenAlexSource
from .pmc_source import PmcSource
from .europepmc_source import EuropePmcSource
from .biorxiv_source import BioRxivSource
from .core_source import CoreSource
from .doi_resolver import DoiResolver

__all__ = [
    "BasePaperSource",
    "ArxivSource",
    "OpenAlexSource",
    "PmcSource",
    "EuropePmcSource",
    "BioRxivSource",
    "CoreSource",
    "DoiResolver",
]
