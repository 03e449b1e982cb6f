# === FILE: site_indexer/cli.py ===
#!/usr/bin/env python3
"""
Точка входа SiteIndexer для командной строки.

Команды:
  crawl     Обойти один шард и записать shard-output-<i>.json / shard-last-<i>.json
  merge     Слить артефакты шардов в индекс и журнал обхода
  shard     Показать, какому шарду принадлежит домен
  config    Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов
  --log-format FORMAT Формат логирования
  --quiet, -q         Не писать логи в stdout
  --version, -v       Показать версию SiteIndexer

Пример:
  site_indexer crawl --domains crawler/domains.csv --shard-index 0 --shard-count 4
  site_indexer merge --artifacts shard_artifacts
"""
import sys
import asyncio
from pathlib import Path

import click
from pydantic import ValidationError

from site_indexer import __version__
from site_indexer.config import load_config
from site_indexer.domains import parse_domains
from site_indexer.logger import configure
from site_indexer.engine import start_shard, start_merge
from site_indexer.partition import shard_for

CONTEXT_SETTINGS = dict(help_option_names=["--help"])
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _override(ctx, **overrides):
    try:
        return ctx.obj['config'].with_overrides(**overrides)
    except ValidationError as e:
        print_error(f'Неверные параметры: {e}')


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteIndexer, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов'
)
@click.option(
    '--log-format', 'log_format',
    default=DEFAULT_FORMAT,
    show_default=True,
    help='Строка формата для логов'
)
@click.option('--quiet', '-q', is_flag=True, help='Не писать логи в stdout')
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format, quiet):
    """Группа команд SiteIndexer CLI."""
    configure(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format,
        stream=not quiet,
    )
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@click.option(
    '--domains', '-d', 'domains_path',
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help='CSV со списком доменов (override domains_file)'
)
@click.option('--shard-index', 'shard_index', type=int, default=None, help='Номер шарда')
@click.option('--shard-count', 'shard_count', type=int, default=None, help='Число шардов')
@click.option(
    '--out-dir', '-o', 'out_dir',
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help='Каталог артефактов (override artifacts_dir)'
)
@click.option('--force/--no-force', default=None, help='Игнорировать days_no_check')
@click.option('--concurrency', type=int, default=None, help='Число параллельных загрузок')
@click.option('--rate-ms', 'rate_ms', type=int, default=None, help='Пауза перед запросом (мс)')
@click.option('--max-pages-per-host', 'max_pages_per_host', type=int, default=None,
              help='Лимит страниц на хост')
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.pass_context
def crawl(ctx, domains_path, shard_index, shard_count, out_dir, force, concurrency, rate_ms,
          max_pages_per_host, pretty):
    """Обойти хосты одного шарда."""
    cfg = _override(
        ctx,
        shard_index=shard_index,
        shard_count=shard_count,
        force=force,
        concurrency=concurrency,
        rate_ms=rate_ms,
        max_pages_per_host=max_pages_per_host,
        domains_file=domains_path,
        artifacts_dir=out_dir,
    )
    try:
        result = asyncio.run(start_shard(cfg))
    except FileNotFoundError as e:
        print_error(f'Файл не найден: {e}')
    except Exception as e:
        print_error(f'Ошибка при обходе шарда: {e}')
    click.echo(result.stats.json(pretty=pretty))


@cli.command('merge', context_settings=CONTEXT_SETTINGS)
@click.option(
    '--artifacts', '-a', 'artifacts_dir',
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help='Каталог с артефактами шардов'
)
@click.option('--index', 'index_path', default=None, type=click.Path(dir_okay=False, path_type=Path),
              help='Файл канонического индекса')
@click.option('--state', 'state_path', default=None, type=click.Path(dir_okay=False, path_type=Path),
              help='Файл журнала обхода')
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.pass_context
def merge(ctx, artifacts_dir, index_path, state_path, pretty):
    """Слить артефакты шардов в индекс и журнал."""
    cfg = _override(ctx, artifacts_dir=artifacts_dir, index_path=index_path, state_path=state_path)
    try:
        stats = start_merge(cfg)
    except FileNotFoundError as e:
        print_error(f'Файл не найден: {e}')
    except Exception as e:
        print_error(f'Ошибка при слиянии: {e}')
    click.echo(stats.json(pretty=pretty))


@cli.command('shard', context_settings=CONTEXT_SETTINGS)
@click.argument('domains', nargs=-1, required=True)
@click.option('--count', 'count', type=click.IntRange(min=1), default=None,
              help='Число шардов (default: shard_count из конфига)')
@click.pass_context
def shard(ctx, domains, count):
    """Показать номер шарда для каждого домена."""
    count = count or ctx.obj['config'].shard_count
    entries = parse_domains(domains)
    if not entries:
        print_error('Нет ни одного корректного домена')
    for entry in entries:
        click.echo(f'{entry.host}\t{shard_for(entry.host, count)}')


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


# expose these names at module level for test monkey-patching
cli.start_shard = start_shard
cli.start_merge = start_merge

if __name__ == "__main__":
    cli()
