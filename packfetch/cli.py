"""
CLI 模块

命令行接口实现。
"""

import asyncio
from typing import Tuple

import click
from loguru import logger

from packfetch import __version__
from packfetch.config_file import load_config, save_config
from packfetch.download import side_predicate
from packfetch.exceptions import PackFetchError
from packfetch.logger import setup_logger
from packfetch.models import PackConfig, Side
from packfetch.orchestrator import PackFetchOrchestrator
from packfetch.settings import Settings


def _load_pack(config_path: str) -> PackConfig:
    return PackConfig.from_dict(load_config(config_path))


def _run(coro):
    """运行协程，把 PackFetchError 转为 click 异常"""
    try:
        return asyncio.run(coro)
    except PackFetchError as e:
        logger.error(e.message)
        raise click.ClickException(str(e))


async def verify_async(config_path: str):
    """异步校验"""
    config = _load_pack(config_path)
    async with PackFetchOrchestrator(config, Settings.load()) as orchestrator:
        pack = await orchestrator.verify()
    for site_name, mods in pack.by_site().items():
        for cfg_id in sorted(mods):
            mod = mods[cfg_id]
            env = mod.env_requirements
            click.echo(
                f"[{site_name}] {cfg_id}: {mod.info.filename} "
                f"(client={env.client.value}, server={env.server.value})"
            )


async def download_async(
    config_path: str, output: str, side: Side, include_optional: bool
):
    """异步下载"""
    config = _load_pack(config_path)
    async with PackFetchOrchestrator(config, Settings.load()) as orchestrator:
        paths = await orchestrator.download(
            output, side_predicate(side, include_optional)
        )
        stats = orchestrator.get_stats()
    logger.success(
        f"完成! 共 {len(paths)} 个模组，下载 {stats['downloaded']} "
        f"({stats['bytes'] / (1024 * 1024):.2f} MB)，缓存命中 {stats['skipped']}"
    )


async def add_mods_async(config_path: str, site_name: str, project_ids: Tuple[str, ...]):
    """异步添加模组"""
    raw_config = load_config(config_path)
    config = PackConfig.from_dict(raw_config)
    async with PackFetchOrchestrator(config, Settings.load()) as orchestrator:
        id_type = orchestrator.sites[site_name].id_type
        try:
            ids = [id_type(project_id) for project_id in project_ids]
        except ValueError:
            raise click.BadParameter(f"{site_name} 的项目 ID 必须是 {id_type.__name__}")
        changed = await orchestrator.add_mods(site_name, ids, raw_config)

    if not changed:
        logger.info("配置没有变化")
        return
    backup = save_config(config_path, raw_config)
    logger.success(f"配置已更新，原文件备份为 {backup}")


@click.group()
@click.option("-v", "--verbose", count=True, help="日志详细程度，可重复")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
def main(verbose: int, debug: bool):
    """PackFetch - Minecraft 整合包模组校验与下载工具"""
    setup_logger(verbosity=max(verbose, 1 if debug else 0))


@main.command()
@click.argument("config", type=click.Path(exists=True), default="pack.toml")
def verify(config: str):
    """校验配置中的所有模组"""
    _run(verify_async(config))


@main.command()
@click.argument("config", type=click.Path(exists=True))
@click.argument("output", type=click.Path(file_okay=False))
@click.option(
    "--side",
    type=click.Choice([s.value for s in Side]),
    default=Side.SERVER.value,
    show_default=True,
    help="下载哪一侧需要的模组",
)
@click.option("--no-optional", is_flag=True, help="不下载可选模组")
def download(config: str, output: str, side: str, no_optional: bool):
    """校验后把模组下载到 OUTPUT/mods，已缓存且校验通过的文件会跳过"""
    _run(download_async(config, output, Side(side), not no_optional))


@main.command("add-mods")
@click.argument("config", type=click.Path(exists=True))
@click.argument("site", type=click.Choice(["curseforge", "modrinth"]))
@click.argument("project_ids", nargs=-1, required=True)
def add_mods(config: str, site: str, project_ids: Tuple[str, ...]):
    """为整合包添加模组的最新兼容版本"""
    _run(add_mods_async(config, site, project_ids))


if __name__ == "__main__":
    main()
