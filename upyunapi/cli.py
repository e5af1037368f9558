"""
upyun CLI：认证信息保存一次，之后所有命令直接使用。
"""

from __future__ import annotations

import getpass
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Optional

import typer

from upyunapi import DeleteResult, UpyunClient, entry_is_folder, entry_modified, entry_size
from upyunapi.cli_config import clear_config, load_config, save_config


def _format_size(n: int) -> str:
    """将字节数格式化为人类可读（KiB/MiB/GiB）。"""
    for unit, scale in (("GiB", 1024 ** 3), ("MiB", 1024 ** 2), ("KiB", 1024)):
        if n >= scale:
            return f"{n / scale:.1f} {unit}"
    return f"{n} B"


def _format_time(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _make_progress_callback(label: str) -> tuple[object, object]:
    """返回 (on_progress(done, total) 回调, finish 回调)。进度输出到 stderr；总大小未知时只显示已传字节。"""
    last_pct: list[int] = [-1]
    bar_width = 24

    def on_progress(done: int, total_bytes: int) -> None:
        if total_bytes <= 0:
            sys.stderr.write(f"\r  {label} {_format_size(done)}   ")
            sys.stderr.flush()
            return
        pct = min(100, int(100 * done / total_bytes))
        if pct == last_pct[0] or (pct % 5 and pct != 100):
            return
        last_pct[0] = pct
        filled = bar_width * pct // 100
        bar = ("=" * filled).ljust(bar_width, " ")
        sys.stderr.write(f"\r  {label} [{bar}] {pct}% {_format_size(done)}/{_format_size(total_bytes)}   ")
        sys.stderr.flush()

    def finish() -> None:
        sys.stderr.write("\n")
        sys.stderr.flush()

    return on_progress, finish


app = typer.Typer(
    name="upyun",
    help="UPYUN storage CLI. Save credentials once; every command reuses them.",
)


@app.callback()
def _root(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log HTTP requests and retries to stderr")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _get_client() -> UpyunClient | None:
    cfg = load_config()
    if not cfg:
        return None
    optional = {k: cfg[k] for k in ("host", "api_secret", "domain", "protocol", "kind") if cfg.get(k)}
    return UpyunClient(cfg["operator"], cfg["password"], cfg["bucket"], timeout=30.0, **optional)


def _require_client() -> UpyunClient:
    client = _get_client()
    if client is None:
        typer.echo("error: no saved credentials. run 'upyun login'", err=True)
        raise typer.Exit(1)
    return client


def _remote(path: str) -> str:
    return "/" + (path or "").strip().lstrip("/")


# ------------------------- login / logout / auth -------------------------


@app.command("login", help="Save credentials to local config")
def login(
    operator: Annotated[Optional[str], typer.Option("--operator", "-u", help="Operator name")] = None,
    password: Annotated[Optional[str], typer.Option("--password", "-p", help="Operator password (unsafe in shell)")] = None,
    bucket: Annotated[Optional[str], typer.Option("--bucket", "-b", help="Service (bucket) name")] = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Bound domain used to build file URLs")] = None,
    api_secret: Annotated[Optional[str], typer.Option("--api-secret", help="Form API secret")] = None,
    domain: Annotated[Optional[str], typer.Option("--domain", help="API domain (default v0.api.upyun.com)")] = None,
    protocol: Annotated[Optional[str], typer.Option("--protocol", help="http or https")] = None,
    kind: Annotated[
        Optional[str], typer.Option("--kind", help="Account kind; 'knowledge' means the password is already MD5-hashed")
    ] = None,
) -> None:
    operator = operator or input("Operator: ").strip()
    bucket = bucket or input("Bucket: ").strip()
    if not operator or not bucket:
        typer.echo("error: operator and bucket required", err=True)
        raise typer.Exit(1)
    if password is None:
        password = getpass.getpass("Password: ")
    if not password:
        typer.echo("error: password required", err=True)
        raise typer.Exit(1)
    save_config(
        operator, password, bucket, host=host, api_secret=api_secret, domain=domain, protocol=protocol, kind=kind
    )
    typer.echo("Saved.")


@app.command("logout", help="Clear saved credentials")
def logout() -> None:
    if clear_config():
        typer.echo("Cleared.")
    else:
        typer.echo("No saved credentials.")


auth_app = typer.Typer(help="Auth subcommands")
app.add_typer(auth_app, name="auth")


@auth_app.command("status", help="Show whether credentials are saved")
def auth_status() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in.")
        return
    typer.echo(f"operator: {cfg['operator']}")
    typer.echo(f"bucket: {cfg['bucket']}")


@app.command("info", help="Show saved configuration (password hidden)")
def info_cmd() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in. Run 'upyun login'.")
        return
    for key in ("operator", "bucket", "host", "domain", "protocol"):
        if cfg.get(key):
            typer.echo(f"{key}: {cfg[key]}")
    typer.echo(f"api_secret: {'yes' if cfg.get('api_secret') else 'no'}")


# ------------------------- usage / list -------------------------


@app.command("usage", help="Show used storage of the bucket")
def usage_cmd() -> None:
    client = _require_client()
    try:
        used = client.usage()
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()
    typer.echo(f"{used} B ({_format_size(used)})")


def _cmd_list_impl(path: str, limit: int, all_pages: bool) -> None:
    client = _require_client()
    try:
        if all_pages:
            entries = list(client.iter_dir(_remote(path), limit=limit))
        else:
            entries = client.list_dir(_remote(path), limit=limit)["files"]
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()
    for e in entries:
        name = e["name"] + ("/" if entry_is_folder(e) else "")
        typer.echo(f"  {name}  {entry_size(e)} B  {_format_time(entry_modified(e))}")


_limit_option = Annotated[int, typer.Option("--limit", "-n", help="Entries per page (max 10000)")]
_all_option = Annotated[bool, typer.Option("--all", "-a", help="Follow pagination to the end")]


@app.command("list", help="List directory")
def list_cmd(
    path: Annotated[str, typer.Argument(help="Directory path (default: /)")] = "/",
    limit: _limit_option = 100,
    all_pages: _all_option = False,
) -> None:
    _cmd_list_impl(path, limit, all_pages)


@app.command("ls", help="Alias for list")
def ls_cmd(
    path: Annotated[str, typer.Argument(help="Directory path (default: /)")] = "/",
    limit: _limit_option = 100,
    all_pages: _all_option = False,
) -> None:
    _cmd_list_impl(path, limit, all_pages)


# ------------------------- upload / download / exists -------------------------


@app.command("upload", help="Upload a file (streamed)")
def upload_cmd(
    path: Annotated[Path, typer.Argument(help="Local file path")],
    to: Annotated[str, typer.Option("--to", "-t", help="Remote path; ending with / keeps the local name")] = "/",
    progress: Annotated[bool, typer.Option("--progress", "-p", help="Show upload progress")] = False,
) -> None:
    if not path.is_file():
        typer.echo(f"error: not a file: {path}", err=True)
        raise typer.Exit(1)
    remote = _remote(to)
    if remote.endswith("/"):
        remote += path.name
    client = _require_client()
    on_progress, progress_finish = _make_progress_callback(path.name) if progress else (None, lambda: None)
    try:
        with path.open("rb") as f:
            client.put_stream(remote, f, on_progress=on_progress)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        progress_finish()
        client.close()
    typer.echo(f"Uploaded to {remote}.")


@app.command("download", help="Download a file")
def download_cmd(
    remote_path: Annotated[str, typer.Argument(help="Remote file path, e.g. /images/a.jpg")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Local path (default: same name)")] = None,
) -> None:
    remote = _remote(remote_path)
    out = output if output is not None else Path(Path(remote).name or "download")
    client = _require_client()
    tmp = out.with_name(out.name + ".part")
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("wb") as f:
            client.get_file_stream(remote, f)
        tmp.replace(out)
    except Exception as e:
        tmp.unlink(missing_ok=True)
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()
    typer.echo(f"Saved to {out}.")


@app.command("exists", help="Check whether a remote file exists (exit 1 if not)")
def exists_cmd(
    remote_path: Annotated[str, typer.Argument(help="Remote file path")],
) -> None:
    client = _require_client()
    try:
        found = client.is_exist_file(_remote(remote_path))
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()
    if found is False:
        typer.echo("Not found.")
        raise typer.Exit(1)
    typer.echo("Exists.")


# ------------------------- delete -------------------------


@app.command("delete", help="Delete a file, an empty directory (--dir) or a directory tree (--recursive)")
def delete_cmd(
    remote_path: Annotated[str, typer.Argument(help="Remote path")],
    is_dir: Annotated[bool, typer.Option("--dir", "-d", help="Delete an empty directory")] = False,
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Delete a directory and everything in it")] = False,
    is_async: Annotated[bool, typer.Option("--async", help="Ask the server to delete asynchronously")] = False,
) -> None:
    remote = _remote(remote_path)
    client = _require_client()
    try:
        if recursive:
            result = client.delete_dir(remote, is_async)
        elif is_dir:
            result = client.delete_empty_dir(remote, is_async)
        else:
            result = client.delete_file(remote, is_async)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()
    if result is DeleteResult.GAVE_UP:
        typer.echo(f"error: gave up deleting {remote} after retries", err=True)
        raise typer.Exit(1)
    typer.echo("Already absent." if result is DeleteResult.ALREADY_ABSENT else "Deleted.")


# ------------------------- policy -------------------------


@app.command("policy", help="Print form-upload policy and authorization (JSON)")
def policy_cmd(
    save_key: Annotated[str, typer.Argument(help="Save key, e.g. /uploads/{filemd5}{.suffix}")],
    expiration: Annotated[Optional[int], typer.Option("--expiration", "-e", help="Expiry as epoch seconds (default: 30 min from now)")] = None,
    legacy: Annotated[bool, typer.Option("--legacy", help="Use the MD5 signature with api_secret")] = False,
) -> None:
    params: dict[str, object] = {"save-key": save_key}
    if expiration is not None:
        params["expiration"] = expiration
    client = _require_client()
    try:
        if legacy:
            data = client.get_policy_and_signature(params)
        else:
            data = client.get_policy_and_authorization(params)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        client.close()
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


# ------------------------- main -------------------------


def main() -> None:
    app()


if __name__ == "__main__":
    main()
