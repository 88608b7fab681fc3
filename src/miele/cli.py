from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import stat
import sys
from pathlib import Path


def _check_keyring_available() -> bool:
    """Check if keyring is installed with a usable backend."""
    try:
        import keyring
        from keyring.backends.fail import Keyring as FailKeyring

        return not isinstance(keyring.get_keyring(), FailKeyring)
    except Exception:
        return False


def _upsert_env_var(env_file: Path, key: str, value: str) -> None:
    """Set or update a key=value pair in a .env file, creating it if needed."""
    from dotenv import set_key

    env_file.parent.mkdir(parents=True, exist_ok=True)
    if not env_file.exists():
        env_file.touch()
    set_key(str(env_file), key, value)


def _remove_env_var(env_file: Path, key: str) -> None:
    from dotenv import unset_key

    if env_file.exists():
        unset_key(str(env_file), key)


def _warn_open_permissions(env_file: Path) -> None:
    """Warn if .env file has group/other read permissions (Unix only)."""
    try:
        mode = env_file.stat().st_mode
        if mode & (stat.S_IRGRP | stat.S_IROTH):
            print(f"\n  AVISO: {env_file} tem permissões abertas.")
            print("  Recomendação: chmod 600", env_file)
    except OSError:
        pass


def _setup_api_key(env_file: Path) -> bool:
    """Ask for the Supabase key and where to keep it. Returns True if stored."""
    api_key = getpass.getpass("Chave da API Supabase (anon/service): ").strip()
    if not api_key:
        print("  Chave não informada.")
        return False

    print()
    print("Onde deseja armazenar a chave?")
    keyring_ok = _check_keyring_available()
    options: list[tuple[str, str]] = []
    if keyring_ok:
        options.append(("1", "Keychain do sistema (recomendado)"))
    options.append(("2", "Arquivo .env no diretório de configuração"))
    options.append(("3", "Não armazenar (definir SUPABASE_KEY manualmente)"))
    for num, label in options:
        print(f"  {num}. {label}")
    if not keyring_ok:
        print()
        print("  Nota: keychain do sistema indisponível (sem backend configurado).")

    print()
    valid_choices = {num for num, _ in options}
    choice = ""
    while choice not in valid_choices:
        choice = input(f"Escolha [{'/'.join(sorted(valid_choices))}]: ").strip()

    from miele.config import _delete_keyring_api_key, _set_keyring_api_key

    if choice == "1" and keyring_ok:
        if _set_keyring_api_key(api_key):
            print("  Chave armazenada no keychain do sistema.")
            _remove_env_var(env_file, "SUPABASE_KEY")
            return True
        print("  ERRO: Falha ao armazenar no keychain. Salvando no .env como alternativa.")
        _upsert_env_var(env_file, "SUPABASE_KEY", api_key)
        _warn_open_permissions(env_file)
        return True
    if choice == "2":
        _upsert_env_var(env_file, "SUPABASE_KEY", api_key)
        print(f"  Chave salva em {env_file}")
        _warn_open_permissions(env_file)
        _delete_keyring_api_key()
        return True
    _remove_env_var(env_file, "SUPABASE_KEY")
    _delete_keyring_api_key()
    print("  Chave não armazenada.")
    print("  Defina SUPABASE_KEY no seu shell ou .env antes de usar o miele.")
    return False


def _init_config() -> None:
    """Create the config/data directories and write the backend settings to .env."""
    from miele.config import BACKENDS, get_config_dir, get_data_dir

    config_dir = get_config_dir()
    data_dir = get_data_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)
    env_file = config_dir / ".env"

    print(f"Configuração: {config_dir}")
    print(f"Dados:   {data_dir}")
    print()

    try:
        backend = ""
        while backend not in BACKENDS:
            backend = input("Backend [supabase/local] (padrão supabase): ").strip().lower() or "supabase"
        _upsert_env_var(env_file, "MIELE_BACKEND", backend)

        if backend == "local":
            print(f"  Tabelas locais em {data_dir / 'tables'}")
            return

        url = input("URL do projeto Supabase: ").strip()
        if url:
            _upsert_env_var(env_file, "SUPABASE_URL", url)
        print()
        _setup_api_key(env_file)
    except (EOFError, KeyboardInterrupt):
        print()
        return

    print()
    print("Próximo passo: miele status")


def _preflight() -> bool:
    """Verify the backend is configured before talking to it."""
    from miele import config

    try:
        backend = config.get_backend()
        config.get_page_size()
    except ValueError as e:
        print(f"Erro: {e}")
        return False
    if backend == "local":
        config.get_data_dir().mkdir(parents=True, exist_ok=True)
        return True
    try:
        config.get_supabase_url()
        config.get_api_key()
    except KeyError as e:
        print(f"Erro: {e.args[0]} não configurado.")
        print("Execute 'miele init' para configurar o acesso ao Supabase.")
        return False
    return True


def _status() -> int:
    from miele.models.perdcomp import PERDCOMP_SCHEMA
    from miele.store.factory import accessor_from_config
    from miele.store.settings import SettingsStore

    settings = SettingsStore(accessor_from_config(PERDCOMP_SCHEMA))
    result = asyncio.run(settings.check_system_status())
    if result.status == "online":
        print(f"Backend online ({result.response_time_ms:.0f} ms)")
        return 0
    print(f"Backend offline: {result.detail}")
    return 1


def _list_perdcomps(page: int, search: str | None) -> int:
    from miele.models.perdcomp import PERDCOMP_SCHEMA
    from miele.store.factory import accessor_from_config
    from miele.store.perdcomps import PerdCompStore
    from miele.utils.formatters import format_brl, format_date

    store = PerdCompStore(accessor_from_config(PERDCOMP_SCHEMA))
    if search:
        asyncio.run(store.search(search))
    else:
        asyncio.run(store.fetch_page(page))
    state = store.state
    if state.error:
        print(f"Erro: {state.error}")
        return 1
    if not state.items:
        print("Nenhum PER/DCOMP encontrado.")
        return 0
    for item in state.items:
        flag = " (vencido)" if item.get("esta_vencido") else ""
        print(
            f"{item.get('numero') or '-':<24} {item.get('competencia') or '-':<8} "
            f"{item.get('tributo_pedido') or '-':<10} {format_brl(item.get('valor_pedido')):>18} "
            f"{item.get('status') or '-':<22} {format_date(item.get('data_vencimento'))}{flag}"
        )
    if not search:
        print()
        print(f"Página {state.current_page} de {max(state.total_pages, 1)} ({state.total_count} registros)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="miele", description="Gestão de PER/DCOMPs e clientes.")
    parser.add_argument("-v", "--verbose", action="store_true", help="log detalhado")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("init", help="configurar backend e credenciais")
    sub.add_parser("status", help="verificar conexão com o backend")
    perdcomps = sub.add_parser("perdcomps", help="listar PER/DCOMPs")
    perdcomps.add_argument("--page", type=int, default=1)
    perdcomps.add_argument("--search", default=None)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the miele CLI."""
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init":
        _init_config()
        return
    if args.command is None:
        parser.print_help()
        return
    if args.command == "perdcomps" and args.page < 1:
        parser.error("--page deve ser >= 1")

    if not _preflight():
        sys.exit(1)

    if args.command == "status":
        code = _status()
    else:
        code = _list_perdcomps(args.page, args.search)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
