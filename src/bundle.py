# Build producer: source tree -> static asset bundle
# Static files get content-hashed names, asset-manifest.json maps them back
import argparse
import hashlib
import json
import logging
import shutil
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

SOURCE_DIR = Path(__file__).resolve().parent
DEFAULT_OUT_DIR = Path('build')
ENTRY_TEMPLATE = 'index.html'
MANIFEST_NAME = 'asset-manifest.json'
HASH_LENGTH = 8


class BuildError(Exception):
    """Source tree cannot be compiled into a bundle"""


def hashed_name(path: Path) -> str:
    """styles.css -> styles.1a2b3c4d.css"""
    digest = hashlib.sha256(path.read_bytes()).hexdigest()[:HASH_LENGTH]
    return f'{path.stem}.{digest}{path.suffix}'


def build_bundle(source_dir=SOURCE_DIR, out_dir=DEFAULT_OUT_DIR) -> dict:
    source_dir = Path(source_dir).resolve()
    out_dir = Path(out_dir).resolve()
    static_src = source_dir / 'static'
    entry_src = source_dir / 'templates' / ENTRY_TEMPLATE

    # check everything before touching out_dir, it gets wiped
    if out_dir == source_dir or source_dir.is_relative_to(out_dir):
        raise BuildError(f'output directory {out_dir} would overwrite the sources in {source_dir}')
    if out_dir.is_relative_to(static_src):
        raise BuildError(f'output directory {out_dir} is inside the static sources {static_src}')
    if not static_src.is_dir():
        raise BuildError(f'static directory not found: {static_src}')
    if not entry_src.is_file():
        raise BuildError(f'entry template not found: {entry_src}')

    if out_dir.exists():
        shutil.rmtree(out_dir)
    (out_dir / 'static').mkdir(parents=True)

    files = {}
    for asset in sorted(p for p in static_src.rglob('*') if p.is_file()):
        logical = asset.relative_to(static_src).as_posix()
        target = asset.relative_to(static_src).with_name(hashed_name(asset))
        dest = out_dir / 'static' / target
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(asset, dest)
        files[logical] = f'/static/{target.as_posix()}'
        logger.info('emitted %s -> %s', logical, files[logical])

    shutil.copyfile(entry_src, out_dir / ENTRY_TEMPLATE)
    logger.info('emitted %s', ENTRY_TEMPLATE)

    manifest = {'files': files, 'entrypoints': [ENTRY_TEMPLATE]}
    (out_dir / MANIFEST_NAME).write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding='utf-8')
    return manifest


def main(argv=None):
    parser = argparse.ArgumentParser(description='Compile the static asset bundle')
    parser.add_argument('--source', default=str(SOURCE_DIR), help='application source tree')
    parser.add_argument('--out', default=str(DEFAULT_OUT_DIR), help='bundle output directory')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')
    try:
        manifest = build_bundle(args.source, args.out)
    except (BuildError, OSError) as e:
        logger.error('build failed: %s', e)
        return 1

    logger.info('bundle ready in %s (%d assets)', args.out, len(manifest['files']))
    return 0


if __name__ == '__main__':
    sys.exit(main())
