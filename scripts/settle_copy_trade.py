#!/usr/bin/env python3
"""
Copy-Trade Settlement Runner
Settles one copied strategy from the command line.

Usage:
    python scripts/settle_copy_trade.py <user_strategy_id> [run_id]

Pass the run_id of a failed run to resume it; legs that already went
through are skipped.
"""
import sys
import os
import json
import logging
from pathlib import Path
from dotenv import load_dotenv

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables from .env
load_dotenv(Path(__file__).parent.parent / ".env")

from options_platform.config import Settings
from options_platform.copy_trading import CopyTradingEngine
from options_platform.errors import PlatformError, SettlementError
from options_platform.repository import Repositories
from options_platform.supabase_client import get_supabase_client

os.makedirs("logs", exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('logs/settle_copy_trade.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


def settle(user_strategy_id, run_id=None):
    settings = Settings()
    engine = CopyTradingEngine(Repositories(get_supabase_client(settings)), settings)

    try:
        result = engine.settle(user_strategy_id, run_id=run_id)
    except SettlementError as e:
        logger.error(f"Settlement stopped: {e.message} (resume with run_id {e.run_id})")
        print(json.dumps(e.to_dict(), indent=2, default=str))
        return False
    except PlatformError as e:
        logger.error(f"Settlement failed: {e.message}")
        return False

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return True


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    run_id = sys.argv[2] if len(sys.argv) > 2 else None
    success = settle(sys.argv[1], run_id)
    sys.exit(0 if success else 1)
