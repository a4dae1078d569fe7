import argparse
import sys

import httpx

from webprobe.core.config import ENV_NAMES, ONLY_MODES, load_config
from webprobe.core.errors import ProbeError
from webprobe.core.orchestrator import Orchestrator
from webprobe.reporters.console import Log


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Web application security and QA probe runner")
    p.add_argument("--env", default="local", choices=ENV_NAMES,
                   help="Loads .env.<env> from the working directory")
    p.add_argument("--only", default="all", choices=ONLY_MODES,
                   help="Run a single suite")
    p.add_argument("--proxy", help="Proxy (eg: http://127.0.0.1:8080)")
    p.add_argument("-v", "--verbose", action="count", default=1,
                   help="-v, -vv")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    log = Log(verbose=args.verbose)
    try:
        config = load_config(args.env)
        return Orchestrator(config, only=args.only, logger=log, proxy=args.proxy).run()
    except (ProbeError, httpx.HTTPError, OSError) as e:
        log.fail(f"[runner] fatal: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
