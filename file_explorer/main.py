import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from .config import GatewayConfig
from .exceptions import FileExplorerError
from .metadata.extract import AudioProbe
from .reporting import log_summary
from .scanning.filesystem import ManifestBuilder
from .storage.store import ManifestStore, encode_manifest


def setup_logging(verbose: bool, log_dir: Optional[Path] = None):
    """Sets up logging to the console and, optionally, a file in log_dir."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "api.log", encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="File Explorer: manifest generator and API server")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--env-file", type=str, default=None, help="Path to a .env file with settings")
    p.add_argument("--log-dir", type=Path, default=None, help="Also write logs to LOG_DIR/api.log")

    sub = p.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Write manifest.json for one folder")
    gen.add_argument("folder", type=Path, help="Directory to scan")
    gen.add_argument("--ffprobe", action="store_true", help="Extract audio metadata with ffprobe")
    gen.add_argument("--stdout", action="store_true", help="Print the manifest instead of saving it")
    gen.add_argument("--prefix", type=str, default=None,
                     help="Web-relative folder recorded in the manifest (default: folder name)")

    gen_all = sub.add_parser("generate-all", help="Write manifest.json for every whitelisted folder")
    gen_all.add_argument("--ffprobe", action="store_true", help="Extract audio metadata with ffprobe")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3000)

    return p.parse_args(argv)


def make_builder(use_ffprobe: bool, ffprobe_path: str) -> ManifestBuilder:
    if not use_ffprobe:
        return ManifestBuilder()

    logging.info("FFprobe mode enabled - extracting audio metadata...")
    probe = AudioProbe(ffprobe_path)
    if not probe.is_available():
        logging.warning("FFprobe not found! Make sure ffmpeg is installed "
                        "(macOS: brew install ffmpeg, Linux: apt install ffmpeg).")
        logging.warning("Continuing without audio metadata extraction...")
        return ManifestBuilder()
    return ManifestBuilder(probe=probe)


def cmd_generate(args, cfg: GatewayConfig) -> int:
    folder = args.folder.resolve()
    if not folder.exists():
        logging.error(f"Path does not exist: {folder}")
        return 1
    if not folder.is_dir():
        logging.error(f"Path is not a directory: {folder}")
        return 1

    prefix = args.prefix if args.prefix is not None else args.folder.name
    builder = make_builder(args.ffprobe, cfg.ffprobe_path)

    logging.info(f"Generating manifest for: {folder}")
    manifest = builder.build(folder, prefix)

    if args.stdout:
        sys.stdout.write(encode_manifest(manifest) + "\n")
        return 0

    dest = ManifestStore().persist(manifest, folder)
    logging.info(f"Manifest created: {dest}")
    log_summary(manifest, probe_audio=builder.probe is not None)
    return 0


def cmd_generate_all(args, cfg: GatewayConfig) -> int:
    builder = make_builder(args.ffprobe, cfg.ffprobe_path)
    store = ManifestStore()
    root = Path(cfg.library_root).resolve()

    failures = 0
    for folder in tqdm(cfg.allowed_folders, desc="Manifests"):
        target = root / folder
        if not target.is_dir():
            logging.warning(f"Skipping {folder}: not a directory under {root}")
            continue
        try:
            store.persist(builder.build(target, folder), target)
        except FileExplorerError as e:
            logging.error(f"Failed to write manifest for {folder}: {e}")
            failures += 1

    return 1 if failures else 0


def cmd_serve(args, cfg: GatewayConfig) -> int:
    import uvicorn

    from .api import create_app

    logging.info(f"File Explorer API on {args.host}:{args.port} (environment={cfg.environment})")
    logging.info(f"Rate limit: {cfg.rate_limit_max_requests} req/{int(cfg.rate_limit_window_sec // 60)}min per IP")
    uvicorn.run(create_app(cfg), host=args.host, port=args.port)
    return 0


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_dir)

    cfg = GatewayConfig.from_env(args.env_file)

    commands = {
        "generate": cmd_generate,
        "generate-all": cmd_generate_all,
        "serve": cmd_serve,
    }

    try:
        code = commands[args.command](args, cfg)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        code = 1
    except FileExplorerError as e:
        logging.error(str(e))
        code = 1
    except Exception:
        logging.exception("Fatal error.")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
