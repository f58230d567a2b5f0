#!/usr/bin/env python3
"""
Cadastrar um usuario diretamente no banco (util para testar os fluxos de token).

Uso:
  python scripts/add_user.py --email pessoa@dominio [--password segredo123] [--id 42] [--send-verification]
"""
from __future__ import annotations

import argparse
import sys

from tokengate.core.config import get_settings
from tokengate.core.log import configure_logging
from tokengate.core.mailer import build_notifier
from tokengate.core.security import hash_password
from tokengate.db.session import Database
from tokengate.domain.tokens import ActionKind
from tokengate.repositories.token_store import TokenStore
from tokengate.repositories.user_repository import SQLUserRepository
from tokengate.services.action_service import ActionAuthorizer


def main() -> None:
    ap = argparse.ArgumentParser(description="Cadastrar usuario")
    ap.add_argument("--email", required=True, help="Email do usuario")
    ap.add_argument("--password", help="Senha inicial (minimo 8 caracteres)")
    ap.add_argument("--id", type=int, help="ID fixo do usuario (default: automatico)")
    ap.add_argument("--send-verification", action="store_true", help="Enviar link de verificacao de e-mail")
    args = ap.parse_args()

    email = (args.email or "").strip()
    if "@" not in email:
        raise SystemExit("Email invalido")
    password = args.password or ""
    if password and len(password) < 8:
        raise SystemExit("Senha muito curta. Use no minimo 8 caracteres")

    settings = get_settings()
    configure_logging(settings.log_level)
    db = Database.from_settings(settings).connect()
    notifier = build_notifier(settings)
    try:
        db.create_all()
        users = SQLUserRepository(db)
        if users.find_by_email(email):
            raise SystemExit(f"Usuario '{email}' ja existe")
        user = users.create_user(email, hash_password(password) if password else "", subject_id=args.id)
        print("OK: usuario cadastrado")
        print(f"  ID: {user.id}")
        print(f"  Email: {user.email}")
        if args.send_verification:
            notifier.connect()
            authorizer = ActionAuthorizer.from_settings(settings, TokenStore.from_settings(db, settings), users, notifier)
            authorizer.request_action(user.id, ActionKind.EMAIL_VERIFICATION)
            print("  Link de verificacao enviado")
    finally:
        notifier.close()
        db.close()


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - uso CLI
        sys.stderr.write(f"Erro: {exc}\n")
        raise SystemExit(1)
