"""ジョブ投入スクリプト。

HTTP POST で /api/v1/jobs にバックグラウンドジョブを投入する開発・テスト用スクリプト。
"""

import argparse
import http.client
import json
import sys
import time


def create_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを作成する。"""
    parser = argparse.ArgumentParser(
        description="バックグラウンドジョブをサーバーに投入する",
    )
    parser.add_argument(
        "type",
        nargs="?",
        default="vectorize",
        choices=["vectorize", "purge_embeddings"],
        help="ジョブ種別 (デフォルト: vectorize)",
    )
    parser.add_argument(
        "-H",
        "--host",
        default="localhost",
        help="サーバーホスト (デフォルト: localhost)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8080,
        help="サーバーポート (デフォルト: 8080)",
    )
    parser.add_argument(
        "-d",
        "--delay",
        type=int,
        default=0,
        help="遅延秒数 (デフォルト: 0)",
    )
    parser.add_argument(
        "-t",
        "--threshold",
        type=int,
        default=None,
        help="vectorize の最小件数を上書きする",
    )
    parser.add_argument(
        "-m",
        "--message-id",
        dest="message_ids",
        action="append",
        default=[],
        help="purge_embeddings の対象メッセージ ID (複数指定可)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=1,
        help="送信回数 (デフォルト: 1)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=0.0,
        help="送信間隔（秒） (デフォルト: 0.0)",
    )
    return parser


def build_payload(args: argparse.Namespace) -> dict[str, object]:
    """ジョブ種別に応じたリクエストボディを組み立てる。"""
    payload: dict[str, object] = {}
    if args.type == "vectorize" and args.threshold is not None:
        payload["min_threshold"] = args.threshold
    if args.type == "purge_embeddings":
        payload["message_ids"] = args.message_ids
    return {"type": args.type, "payload": payload, "delay": args.delay}


def send_job(host: str, port: int, body: dict[str, object]) -> tuple[bool, str]:
    """ジョブを投入する。

    Args:
        host: サーバーホスト
        port: サーバーポート
        body: リクエストボディ

    Returns:
        (成功フラグ, ジョブ ID またはエラーメッセージ) のタプル
    """
    try:
        conn = http.client.HTTPConnection(host, port, timeout=30)
        try:
            conn.request(
                "POST",
                "/api/v1/jobs",
                body=json.dumps(body),
                headers={"Content-Type": "application/json"},
            )
            response = conn.getresponse()
            text = response.read().decode("utf-8")

            if response.status != 200:
                return False, f"{response.status} {response.reason}: {text}"
            try:
                return True, json.loads(text).get("job_id", "unknown")
            except json.JSONDecodeError:
                return False, f"Invalid JSON response: {text}"
        finally:
            conn.close()
    except ConnectionRefusedError:
        return False, "Connection refused"
    except TimeoutError:
        return False, "Connection timeout"
    except OSError as e:
        return False, str(e)


def main() -> int:
    """メインエントリーポイント。"""
    args = create_parser().parse_args()
    body = build_payload(args)

    print(f"Sending {args.type} job to http://{args.host}:{args.port}/api/v1/jobs...")

    for i in range(args.count):
        if i > 0 and args.interval > 0:
            time.sleep(args.interval)

        success, message = send_job(args.host, args.port, body)
        if not success:
            print(f"Error: {message}")
            return 1
        print(f"[{i + 1}/{args.count}] Job ID: {message} (delay: {args.delay}s)")

    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
