from __future__ import annotations

import argparse
from pathlib import Path
import sys

from .config import AppSettings, default_db_path, load_settings
from .errors import StorageUnavailable, TimeTrackError
from .exporting import export_sessions_csv
from .logging_setup import configure_logging
from .models import SessionState, normalize_tags
from .reporting import format_clock, format_duration, render_summary
from .store import TimeTrackStore, diagnose

DEFAULT_OUT_DIR = Path(__file__).resolve().parent / "out"

STATE_LABELS = {
    SessionState.RUNNING: "计时中",
    SessionState.PAUSED: "已暂停",
    SessionState.STOPPED: "已停止",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timetrack",
        description="TimeTrack：基于 SQLite 的任务计时与会话记录工具",
    )
    parser.add_argument(
        "--db",
        default=None,
        help=f"SQLite 数据库路径（默认 {default_db_path()}）",
    )
    parser.add_argument("--config", default=None, help="JSON 配置文件路径")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="初始化数据库")

    task_parser = subparsers.add_parser("task", help="任务管理")
    task_sub = task_parser.add_subparsers(dest="task_command", required=True)
    task_add = task_sub.add_parser("add", help="新建任务")
    task_add.add_argument("name", help="任务名称（3-100 个字符）")
    task_add.add_argument("--category", type=int, default=None, help="分类 ID")
    task_add.add_argument("--tags", default="", help="标签，逗号分隔")
    task_list = task_sub.add_parser("list", help="列出任务")
    task_list.add_argument(
        "--status",
        choices=("all", "open", "done"),
        default="all",
        help="按完成状态过滤",
    )
    for name, help_text in (("done", "标记完成"), ("undone", "标记未完成"), ("delete", "删除任务")):
        sub = task_sub.add_parser(name, help=help_text)
        sub.add_argument("task_id", type=int, help="任务 ID")
    task_tags = task_sub.add_parser("tags", help="替换任务标签")
    task_tags.add_argument("task_id", type=int, help="任务 ID")
    task_tags.add_argument("tags", help="标签，逗号分隔；空字符串表示清空")
    task_category = task_sub.add_parser("category", help="设置任务分类")
    task_category.add_argument("task_id", type=int, help="任务 ID")
    task_category.add_argument("category_id", type=int, nargs="?", default=None, help="分类 ID，省略表示清除")

    category_parser = subparsers.add_parser("category", help="分类管理")
    category_sub = category_parser.add_subparsers(dest="category_command", required=True)
    category_add = category_sub.add_parser("add", help="新建分类")
    category_add.add_argument("name", help="分类名称")
    category_add.add_argument("--color", default="#FFFFFF", help="颜色，如 #FF5733")
    category_sub.add_parser("list", help="列出分类")
    category_delete = category_sub.add_parser("delete", help="删除分类")
    category_delete.add_argument("category_id", type=int, help="分类 ID")

    timer_parser = subparsers.add_parser(
        "timer",
        help="会话计时",
        description="会话计时。暂停时长只记在当前进程内，跨命令调用的暂停不会从计时中扣除。",
    )
    timer_sub = timer_parser.add_subparsers(dest="timer_command", required=True)
    timer_start = timer_sub.add_parser("start", help="开始计时")
    timer_start.add_argument("task_id", type=int, help="任务 ID")
    timer_start.add_argument("--notes", default=None, help="备注")
    timer_sub.add_parser("pause", help="暂停")
    timer_sub.add_parser("resume", help="继续")
    timer_stop = timer_sub.add_parser("stop", help="停止并保存，输出扣除暂停后的计时")
    timer_stop.add_argument("--notes", default=None, help="备注")
    timer_sub.add_parser("status", help="查看当前计时")

    sessions_parser = subparsers.add_parser("sessions", help="查看会话")
    sessions_parser.add_argument("--task", type=int, default=None, help="只看某个任务")

    subparsers.add_parser("summary", help="按任务与分类汇总时长")

    export_parser = subparsers.add_parser("export", help="导出 CSV")
    export_parser.add_argument(
        "--out-dir",
        default=str(DEFAULT_OUT_DIR),
        help="输出目录，默认 timetrack/out",
    )

    subparsers.add_parser("diagnose", help="检查数据库文件状态")

    reset_parser = subparsers.add_parser("reset", help="删除数据库并重建空库")
    reset_parser.add_argument("--yes", action="store_true", help="确认删除全部任务、分类与会话")

    serve_parser = subparsers.add_parser("serve", help="启动 HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="监听地址")
    serve_parser.add_argument("--port", type=int, default=8765, help="监听端口")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except TimeTrackError as exc:
        print(f"配置错误：{exc}", file=sys.stderr)
        return 1
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    db_path = Path(args.db) if args.db else settings.resolved_db_path()

    if args.command == "diagnose":
        return _handle_diagnose(db_path)
    if args.command == "serve":
        return _handle_serve(args, db_path, settings)

    store = TimeTrackStore(db_path=db_path, settings=settings)
    try:
        store.open()
    except StorageUnavailable as exc:
        print(f"无法写入数据目录：{exc}", file=sys.stderr)
        return 2
    except TimeTrackError as exc:
        print(f"打开数据库失败：{exc}", file=sys.stderr)
        return 1

    try:
        if store.recreated:
            print("数据库已损坏，已重建为空库。", file=sys.stderr)
        return _dispatch(args, store, parser)
    except TimeTrackError as exc:
        print(f"错误：{exc}", file=sys.stderr)
        return 1
    finally:
        store.close()


def _dispatch(args: argparse.Namespace, store: TimeTrackStore, parser: argparse.ArgumentParser) -> int:
    if args.command == "init":
        print(f"数据库已就绪：{store.db_path}（{store.status.value}）")
        return 0
    if args.command == "task":
        return _handle_task(args, store)
    if args.command == "category":
        return _handle_category(args, store)
    if args.command == "timer":
        return _handle_timer(args, store)
    if args.command == "sessions":
        return _handle_sessions(args, store)
    if args.command == "summary":
        return _handle_summary(store)
    if args.command == "export":
        return _handle_export(args, store)
    if args.command == "reset":
        return _handle_reset(args, store)

    parser.print_help()
    return 2


def _handle_task(args: argparse.Namespace, store: TimeTrackStore) -> int:
    command = args.task_command
    if command == "add":
        task_id = store.tasks.create(args.name, category_id=args.category, tags=normalize_tags(args.tags))
        print(f"任务已创建：#{task_id}")
        return 0
    if command == "list":
        if args.status == "all":
            tasks = store.tasks.get_all()
        else:
            tasks = store.tasks.filter_by_completion(args.status == "done")
        if not tasks:
            print("暂无任务。")
            return 0
        for item in tasks:
            mark = "x" if item.is_complete else " "
            category_text = item.category_name or "-"
            tags_text = ",".join(item.tags) or "-"
            print(f"[{mark}] #{item.id} {item.name} | 分类: {category_text} | 标签: {tags_text}")
        return 0
    if command in ("done", "undone"):
        store.tasks.set_complete(args.task_id, command == "done")
        print(f"任务 #{args.task_id} 已更新")
        return 0
    if command == "delete":
        if not store.tasks.delete(args.task_id):
            print(f"任务不存在：#{args.task_id}", file=sys.stderr)
            return 1
        print(f"任务 #{args.task_id} 已删除")
        return 0
    if command == "tags":
        tags = store.tasks.replace_tags(args.task_id, args.tags)
        print(f"标签已更新：{','.join(tags) or '-'}")
        return 0
    if command == "category":
        store.tasks.set_category(args.task_id, args.category_id)
        print(f"任务 #{args.task_id} 分类已更新")
        return 0
    return 2


def _handle_category(args: argparse.Namespace, store: TimeTrackStore) -> int:
    command = args.category_command
    if command == "add":
        category_id = store.categories.create(args.name, args.color)
        print(f"分类已创建：#{category_id}")
        return 0
    if command == "list":
        categories = store.categories.get_all()
        if not categories:
            print("暂无分类。")
            return 0
        for item in categories:
            print(f"#{item.id} {item.name} {item.color}")
        return 0
    if command == "delete":
        if not store.categories.delete(args.category_id):
            print(f"分类不存在：#{args.category_id}", file=sys.stderr)
            return 1
        print(f"分类 #{args.category_id} 已删除")
        return 0
    return 2


def _handle_timer(args: argparse.Namespace, store: TimeTrackStore) -> int:
    machine = store.session_machine(restore=True)
    command = args.timer_command
    if command == "start":
        snapshot = machine.start(args.task_id, args.notes)
        print(f"会话 #{snapshot.session_id} 开始计时")
        return 0
    if command == "pause":
        snapshot = machine.pause()
        print(f"会话 #{snapshot.session_id} 已暂停，已计 {format_clock(snapshot.elapsed_seconds)}")
        return 0
    if command == "resume":
        snapshot = machine.resume()
        print(f"会话 #{snapshot.session_id} 继续计时")
        return 0
    if command == "stop":
        record = machine.stop(args.notes)
        span = record.duration.total_seconds() if record.duration is not None else 0
        active = machine.elapsed().total_seconds()
        print(f"会话 #{record.id} 已保存，计时 {format_duration(active)}（起止跨度 {format_duration(span)}）")
        return 0
    if command == "status":
        snapshot = machine.snapshot()
        if snapshot.session_id is None:
            print("当前没有进行中的会话。")
            return 0
        print(
            f"会话 #{snapshot.session_id} | 任务 #{snapshot.task_id} | "
            f"{STATE_LABELS[snapshot.state]} | {format_clock(snapshot.elapsed_seconds)}"
        )
        return 0
    return 2


def _handle_sessions(args: argparse.Namespace, store: TimeTrackStore) -> int:
    if args.task is not None:
        sessions = store.sessions.get_for_task(args.task)
    else:
        sessions = store.sessions.get_all()

    if not sessions:
        print("没有匹配记录。")
        return 0

    for item in sessions:
        start_text = item.start_time.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        duration = item.duration
        duration_text = format_duration(duration.total_seconds()) if duration is not None else "进行中"
        print(
            f"#{item.id} | 任务 #{item.task_id} | {start_text} | {duration_text} | "
            f"{STATE_LABELS[item.state]} | 备注: {item.notes or '-'}"
        )
    return 0


def _handle_summary(store: TimeTrackStore) -> int:
    for line in render_summary(store.sessions.summary()):
        print(line)
    return 0


def _handle_export(args: argparse.Namespace, store: TimeTrackStore) -> int:
    csv_path = export_sessions_csv(store=store, out_dir=Path(args.out_dir))
    print(f"CSV 已导出：{csv_path}")
    return 0


def _handle_reset(args: argparse.Namespace, store: TimeTrackStore) -> int:
    if not args.yes:
        print("重置会删除全部任务、分类与会话，请加 --yes 确认。", file=sys.stderr)
        return 1
    status = store.reset()
    print(f"数据库已重置：{store.db_path}（{status.value}）")
    return 0


def _handle_diagnose(db_path: Path) -> int:
    report = diagnose(db_path)
    print(f"数据库路径: {report['db_path']}")
    print(f"目录可写: {'是' if report['directory_writable'] else '否'}")
    print(f"文件存在: {'是' if report['exists'] else '否'}")
    print(f"文件大小: {report['size_bytes']} 字节")
    for name, present in report["sidecars"].items():
        print(f"{name}: {'存在' if present else '不存在'}")
    print(f"数据表: {', '.join(report['tables']) or '-'}")
    if report["error"]:
        print(f"读取失败: {report['error']}")
        return 1
    return 0


def _handle_serve(args: argparse.Namespace, db_path: Path, settings: AppSettings) -> int:
    import uvicorn

    from .api.app import create_app

    app = create_app(db_path=db_path, settings=settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0
