import asyncio
import json
import logging
import socket
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import typer


app = typer.Typer(help="Hunt Tracker: live hunting statistics from the game's chat log")
sessions_app = typer.Typer(help="List, create and switch hunting sessions")
loadouts_app = typer.Typer(help="List, create and switch weapon loadouts")
markups_app = typer.Typer(help="Inspect and edit item markups")
app.add_typer(sessions_app, name="sessions")
app.add_typer(loadouts_app, name="loadouts")
app.add_typer(markups_app, name="markups")


def _send_control_command(cmd: dict, host: str = "127.0.0.1", port: int = 8775, timeout: float = 3.0) -> dict:
    data = (json.dumps(cmd) + "\n").encode()
    try:
        with socket.create_connection((host, port), timeout=timeout) as s:
            s.sendall(data)
            s.shutdown(socket.SHUT_WR)
            buf = s.recv(65536)
    except OSError as e:
        return {"ok": False, "error": f"tracker not reachable on {host}:{port}: {e}"}
    if not buf:
        return {}
    try:
        return json.loads(buf.decode())
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {"raw": buf.decode(errors="ignore")}


def _echo(obj) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _state_dir(dir: Optional[str]) -> Path:
    from .util import ensure_state_dir, project_root_from_cwd, state_dir_from_env

    if dir:
        state = Path(dir).resolve()
        state.mkdir(parents=True, exist_ok=True)
        return state
    return state_dir_from_env() or ensure_state_dir(project_root_from_cwd())


def _store(dir: Optional[str]):
    from .store import StateStore

    return StateStore(_state_dir(dir))


def _registry(patterns: Optional[str]):
    from .patterns import PatternError, PatternRegistry, load_patterns

    try:
        if patterns:
            return PatternRegistry.build(load_patterns(Path(patterns)))
        return PatternRegistry.build()
    except (PatternError, OSError) as e:
        typer.echo(f"Invalid pattern catalogue: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def start(
    log: Optional[str] = typer.Option(None, "--log", help="Chat log file to tail", metavar="FILE"),
    player: Optional[str] = typer.Option(None, "--player", help="Avatar name used to recognise your own globals"),
    dir: Optional[str] = typer.Option(None, "--dir", help="State directory (defaults to ./.hunt-tracker)", metavar="PATH"),
    host: Optional[str] = typer.Option(None, help="Control server host"),
    port: Optional[int] = typer.Option(None, help="Control server port"),
    tick: Optional[float] = typer.Option(None, "--tick", help="Main loop tick in seconds"),
    patterns: Optional[str] = typer.Option(None, "--patterns", help="YAML pattern catalogue", metavar="FILE"),
    run: bool = typer.Option(False, "--run/--no-run", help="Start the session timer immediately"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Tail the chat log and track the current session.

    - Creates the state directory and a default `config.yaml` on first use.
    - Resumes the most recent session (paused) or creates a new one.
    - Control it with `hunt-tracker pause|resume|status|summary|stop`.
    """
    from .config import ConfigError, default_config_yaml, load_config
    from .runtime import TrackerState, run_tracker

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    state_dir = _state_dir(dir)
    config_path = state_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(default_config_yaml(), encoding="utf-8")
    try:
        config = load_config(config_path).with_overrides(
            log_path=log, player=player, host=host, port=port, tick_interval=tick, patterns_file=patterns,
        )
    except ConfigError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)
    if not config.log_path:
        typer.echo(f"No chat log configured; pass --log or set log_path in {config_path}", err=True)
        raise typer.Exit(code=1)
    if not config.player:
        typer.echo("No player name configured; globals will not be counted", err=True)

    from .store import StateStore

    state = TrackerState(config, _registry(config.patterns_file), StateStore(state_dir))
    asyncio.run(run_tracker(state, start_session=run))


@app.command()
def status(host: str = "127.0.0.1", port: int = 8775):
    """Show the running tracker's session, timer and line counters."""
    _echo(_send_control_command({"cmd": "status"}, host, port))


@app.command()
def summary(host: str = "127.0.0.1", port: int = 8775):
    """Show profit, cost and combat ratios of the live session."""
    _echo(_send_control_command({"cmd": "summary"}, host, port))


@app.command()
def activity(limit: int = 20, host: str = "127.0.0.1", port: int = 8775):
    """Show the most recent tracked lines."""
    _echo(_send_control_command({"cmd": "activity", "limit": limit}, host, port))


@app.command()
def pause(host: str = "127.0.0.1", port: int = 8775):
    """Pause the session timer; events are ignored while paused."""
    _echo(_send_control_command({"cmd": "pause"}, host, port))


@app.command()
def resume(host: str = "127.0.0.1", port: int = 8775):
    """Start or resume the session timer."""
    _echo(_send_control_command({"cmd": "resume"}, host, port))


@app.command()
def reset(host: str = "127.0.0.1", port: int = 8775):
    """Zero the session timer and leave it paused."""
    _echo(_send_control_command({"cmd": "reset"}, host, port))


@app.command()
def stop(host: str = "127.0.0.1", port: int = 8775):
    """Ask the running tracker to save and exit."""
    _echo(_send_control_command({"cmd": "stop"}, host, port))


@app.command()
def patterns(
    file: Optional[str] = typer.Option(None, "--file", help="YAML pattern catalogue", metavar="FILE"),
    yaml_out: bool = typer.Option(False, "--yaml", help="Print the catalogue as YAML"),
):
    """List the message patterns in precedence order."""
    from .patterns import default_patterns_yaml

    if yaml_out and not file:
        typer.echo(default_patterns_yaml())
        return
    reg = _registry(file)
    _echo([
        {"id": p.id, "category": p.category.value, "kind": p.kind.value, "fields": list(p.fields), "regex": p.regex}
        for p in reg.patterns
    ])


@app.command()
def classify(
    line: str,
    file: Optional[str] = typer.Option(None, "--file", help="YAML pattern catalogue", metavar="FILE"),
):
    """Show how a single chat line would be classified."""
    from .classifier import EventClassifier

    ev = EventClassifier(_registry(file)).classify(line)
    if ev is None:
        _echo({"matched": False})
        return
    _echo({
        "matched": True,
        "pattern_id": ev.pattern_id,
        "category": ev.category.value,
        "kind": ev.kind.value,
        "fields": list(ev.fields),
    })


@app.command()
def report(
    session: Optional[str] = typer.Argument(None, help="Session name (defaults to the latest)"),
    dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH"),
):
    """Summarise a saved session without a running tracker."""
    from .store import StoreError
    from .tracker import Tracker

    store = _store(dir)
    try:
        sess = store.load_session(session) if session else store.latest_session()
        markups = store.load_markups()
    except StoreError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    if sess is None:
        typer.echo("No such session", err=True)
        raise typer.Exit(code=1)
    _echo(Tracker("", sess, markups=markups).summary())


@sessions_app.command("list")
def sessions_list(dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH")):
    """List saved sessions, newest first."""
    rows = [
        {"name": s.name, "loadout": s.loadout.name, "elapsed": s.pretty_elapsed(), "created_at": int(s.created_at)}
        for s in _store(dir).fetch_sessions()
    ]
    _echo(rows)


@sessions_app.command("new")
def sessions_new(
    name: Optional[str] = typer.Argument(None, help="Session name (defaults to a timestamp)"),
    dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH"),
    live: bool = typer.Option(False, "--live", help="Create it through the running tracker"),
    host: str = "127.0.0.1",
    port: int = 8775,
):
    """Create an empty session."""
    if live:
        _echo(_send_control_command({"cmd": "new_session", "name": name}, host, port))
        return
    _echo({"ok": True, "created": _store(dir).new_session(name).name})


@sessions_app.command("select")
def sessions_select(name: str, host: str = "127.0.0.1", port: int = 8775):
    """Switch the running tracker to another saved session."""
    _echo(_send_control_command({"cmd": "select_session", "name": name}, host, port))


@loadouts_app.command("list")
def loadouts_list(dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH")):
    """List saved loadouts and their cost per shot."""
    from .tracker import cost_per_shot

    rows = [
        {"name": l.name, "weapon": l.weapon, "amp": l.amp, "decay": str(l.decay), "burn": l.burn,
         "cost_per_shot": f"{cost_per_shot(l.decay, l.burn):f}"}
        for l in _store(dir).fetch_loadouts()
    ]
    _echo(rows)


@loadouts_app.command("new")
def loadouts_new(
    name: str,
    decay: str = typer.Option("0", help="Decay per shot"),
    burn: int = typer.Option(0, help="Ammo burn per shot"),
    weapon: Optional[str] = None,
    amp: Optional[str] = None,
    scope: Optional[str] = None,
    sight_one: Optional[str] = None,
    sight_two: Optional[str] = None,
    dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH"),
):
    """Create or overwrite a loadout."""
    try:
        decay_value = Decimal(decay)
    except InvalidOperation:
        typer.echo(f"Invalid decay: {decay}", err=True)
        raise typer.Exit(code=1)
    loadout = _store(dir).new_loadout(
        name, decay=decay_value, burn=burn,
        weapon=weapon, amp=amp, scope=scope, sight_one=sight_one, sight_two=sight_two,
    )
    _echo({"ok": True, "created": loadout.name})


@loadouts_app.command("select")
def loadouts_select(name: str, host: str = "127.0.0.1", port: int = 8775):
    """Equip a saved loadout on the running tracker's session."""
    _echo(_send_control_command({"cmd": "select_loadout", "name": name}, host, port))


@markups_app.command("list")
def markups_list(dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH")):
    """List item markups as percentages."""
    from .store import StoreError

    try:
        markups = _store(dir).load_markups()
    except StoreError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    _echo([{"name": m.name, "percent": str(m.value * 100)} for m in sorted(markups.values(), key=lambda m: m.name)])


@markups_app.command("set")
def markups_set(
    name: str,
    percent: str,
    dir: Optional[str] = typer.Option(None, "--dir", help="State directory", metavar="PATH"),
    live: bool = typer.Option(False, "--live", help="Apply to the running tracker instead of the file"),
    host: str = "127.0.0.1",
    port: int = 8775,
):
    """Set an item's markup, e.g. `markups set "Animal Hide" 115`."""
    from .loadout import Markup

    try:
        pct = Decimal(percent)
    except InvalidOperation:
        pct = Decimal("NaN")
    if not pct.is_finite():
        typer.echo(f"Invalid percent: {percent}", err=True)
        raise typer.Exit(code=1)
    if live:
        _echo(_send_control_command({"cmd": "set_markup", "name": name, "percent": percent}, host, port))
        return
    store = _store(dir)
    markups = store.load_markups()
    markup = markups.get(name)
    if markup is None:
        markup = markups[name] = Markup(name=name)
    markup.value = pct / 100
    store.save_markups(markups)
    _echo({"ok": True, "name": name, "value": str(markup.value)})


def main():
    """Entry point for console_scripts."""
    app()


if __name__ == "__main__":
    main()
