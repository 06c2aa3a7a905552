"""
多数据源论文采集演示程序

按 harvest_config.json 中的 demo 配置运行一遍完整流程：
- 列出各数据源的分类
- 浏览最新论文（仅元数据）
- 对每个数据源的第一篇论文获取正文
"""

from typing import Dict, List

from tqdm import tqdm

from config import settings
from harvester import HarvestAgent, HarvestError, PaperMetadata
from utils.logger import setup_logger

# 初始化系统日志记录器
logger = setup_logger("Main")


def main():
    """
    演示主流程。

    工作流程:
    1. 加载配置
    2. 列出各数据源分类
    3. 浏览最新论文
    4. 获取正文
    """
    print("\n" + "=" * 80)
    print("🚀 论文采集器启动")
    print("=" * 80 + "\n")

    # ==================== 阶段1: 配置加载 ====================
    logger.info(">>> 阶段1: 加载配置...")
    logger.info(f"演示数据源: {settings.DEMO_SOURCES}")
    logger.info(f"每个数据源论文数: {settings.DEMO_COUNT}")
    logger.info(f"获取正文: {settings.DEMO_FETCH_CONTENT}")
    logger.info(f"正文长度上限: {settings.EXTRACTION.max_text_length} 字符")

    with HarvestAgent(settings) as agent:

        # ==================== 阶段2: 分类 ====================
        logger.info(">>> 阶段2: 列出分类...")
        for source in settings.DEMO_SOURCES:
            try:
                category_list = agent.list_categories(source)
                names = ", ".join(c.id for c in category_list.categories[:5])
                logger.info(f"  [{source}] {len(category_list.categories)} 个分类: {names} ...")
            except HarvestError as e:
                logger.error(f"  [{source}] 获取分类失败: {e.code.value}: {e.message}")

        # ==================== 阶段3: 浏览最新论文 ====================
        logger.info(">>> 阶段3: 浏览最新论文...")
        papers_by_source: Dict[str, List[PaperMetadata]] = {}

        with tqdm(total=len(settings.DEMO_SOURCES), desc="📚 浏览", unit="源", ncols=100) as pbar:
            for source in settings.DEMO_SOURCES:
                category = settings.DEMO_CATEGORIES.get(source)
                pbar.set_postfix_str(f"{source}: {category}")
                if not category:
                    pbar.write(f"  ✗ [{source}] 未配置演示分类，跳过")
                    pbar.update(1)
                    continue

                try:
                    response = agent.fetch_latest(source, category, settings.DEMO_COUNT)
                    papers_by_source[source] = response.content
                    pbar.write(f"  ✓ [{source}] {category}: {len(response.content)} 篇")
                    for warning in response.warnings:
                        pbar.write(f"    ⚠️  {warning}")
                except HarvestError as e:
                    logger.error(f"  [{source}] 浏览失败: {e.code.value}: {e.message}")
                    pbar.write(f"  ✗ [{source}] {e.message}")

                pbar.update(1)

        total_papers = sum(len(p) for p in papers_by_source.values())
        if total_papers == 0:
            logger.info("未获取到任何论文。")
            print("\n未获取到任何论文，程序退出。")
            return

        # ==================== 阶段4: 获取正文 ====================
        contents: Dict[str, PaperMetadata] = {}
        if settings.DEMO_FETCH_CONTENT:
            logger.info(">>> 阶段4: 获取正文...")
            targets = [(source, papers[0]) for source, papers in papers_by_source.items() if papers]

            with tqdm(total=len(targets), desc="🔬 正文", unit="篇", ncols=100) as pbar:
                for source, paper in targets:
                    pbar.set_postfix_str(f"{paper.title[:35]}...")
                    try:
                        response = agent.fetch_content(source, paper.id)
                        contents[source] = response.content
                        if response.content.text_extraction_failed:
                            pbar.write(f"  ✗ [{source}] 正文不可用: {paper.title[:50]}")
                        else:
                            pbar.write(f"  ✓ [{source}] {len(response.content.text)} 字符: {paper.title[:50]}")
                            pbar.write(f"    作者: {response.content.get_authors_string()[:80]}")
                    except HarvestError as e:
                        logger.error(f"  [{source}] 获取正文失败: {e.code.value}: {e.message}")
                        pbar.write(f"  ✗ [{source}] {e.message}")
                    pbar.update(1)
        else:
            logger.info(">>> 阶段4: 未启用正文获取，跳过")

    # ==================== 完成 ====================
    logger.info("=" * 80)
    logger.info("✅ 任务完成！")
    for source, papers in papers_by_source.items():
        content = contents.get(source)
        text_length = len(content.text) if content else 0
        logger.info(f"  [{source}] 浏览: {len(papers)} 篇 | 正文: {text_length} 字符")
    logger.info("=" * 80)

    print("\n" + "=" * 80)
    print("🎉 所有任务已完成！")
    print("=" * 80)
    print("📊 统计信息:")
    for source, papers in papers_by_source.items():
        print(f"   [{source.upper()}]")
        print(f"     • 浏览: {len(papers)} 篇")
        content = contents.get(source)
        if content is not None:
            status = "提取失败" if content.text_extraction_failed else f"{len(content.text)} 字符"
            if content.text_truncated:
                status += "（已截断）"
            print(f"     • 正文: {status}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
