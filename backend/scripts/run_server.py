"""Run the scoreboard web app with uvicorn.
Usage: python scripts/run_server.py [--host 127.0.0.1] [--port 8000] [--reload]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `scoreboard` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
import uvicorn

from scoreboard.config import settings


def main(host: str = '127.0.0.1', port: int = 8000, reload: bool = False):
    uvicorn.run(
        'scoreboard.main:app',
        host=host,
        port=port,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=8000)
    parser.add_argument('--reload', action='store_true', help='Restart on code changes (development only)')
    args = parser.parse_args()
    main(host=args.host, port=args.port, reload=args.reload)
