#!/usr/bin/env python3
"""
Remover tokens de acao ja encerrados (consumidos, invalidados ou expirados).

Uso:
  python scripts/purge_tokens.py [--older-than-hours 24]
"""
from __future__ import annotations

import argparse
import sys
from datetime import timedelta

from tokengate.core.config import get_settings
from tokengate.core.log import configure_logging
from tokengate.core.utils import utcnow
from tokengate.db.session import Database
from tokengate.repositories.token_store import TokenStore


def main() -> None:
    ap = argparse.ArgumentParser(description="Limpar tokens de acao encerrados")
    ap.add_argument("--older-than-hours", type=float, default=24.0, help="Idade minima do encerramento (default: 24h)")
    args = ap.parse_args()
    if args.older_than_hours < 0:
        raise SystemExit("Idade invalida")

    settings = get_settings()
    configure_logging(settings.log_level)
    db = Database.from_settings(settings).connect()
    try:
        store = TokenStore.from_settings(db, settings)
        removed = store.purge(utcnow() - timedelta(hours=args.older_than_hours))
    finally:
        db.close()
    print(f"OK: {removed} token(s) removido(s)")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - uso CLI
        sys.stderr.write(f"Erro: {exc}\n")
        raise SystemExit(1)
