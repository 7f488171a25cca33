import os
import signal
import subprocess
import sys
import threading
import time

import requests

# =========================
# Environment
# =========================
env = os.environ.copy()
env["PYTHONUNBUFFERED"] = "1"

# =========================
# Colors
# =========================
COLORS = {
    "kv": "\033[94m",          # blue
    "tc": "\033[95m",          # magenta
    "reset": "\033[0m",
}

# =========================
# Services
# =========================
SERVICES = {
    "kv": {
        "app": "src.kvs.service.kv_service:app",
        "port": "8101",
    },
    "tc": {
        "app": "src.tc.main:app",
        "port": "8100",
        # the coordinator service talks to the kv service over HTTP
        "env": {"TXN_KV_BACKEND": "http", "TXN_KV_BASE_URL": "http://127.0.0.1:8101"},
    },
}

BASE_CMD = [
    "uvicorn",
    "--host", "0.0.0.0",
    "--log-level", "info",
]


def wait_health(port, timeout=15):
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            r = requests.get(f"http://127.0.0.1:{port}/health", timeout=2)
            if r.status_code == 200:
                return True
        except requests.RequestException:
            pass
        time.sleep(0.2)
    return False


# =========================
# Start one service
# =========================
def start_service(name):
    cfg = SERVICES[name]
    color = COLORS.get(name, "")
    reset = COLORS["reset"]

    cmd = BASE_CMD + [
        cfg["app"],
        "--port", cfg["port"],
    ]

    print(f"{color}[START] {name:<4} → {cfg['port']}{reset}")

    proc = subprocess.Popen(
        cmd,
        cwd=os.getcwd(),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
        env={**env, **cfg.get("env", {})},
    )
    return proc, name


def stream_logs(proc, name):
    color = COLORS.get(name, "")
    reset = COLORS["reset"]

    for line in proc.stdout:
        print(f"{color}[{name.upper():<4}] {line.rstrip()}{reset}")


# =========================
# Start several services
# =========================
def start_many(names):
    procs = []

    try:
        for name in names:
            p, svc = start_service(name)
            procs.append((p, svc))

            t = threading.Thread(
                target=stream_logs,
                args=(p, svc),
                daemon=True,
            )
            t.start()

            if not wait_health(SERVICES[name]["port"]):
                print(f"[WARN] {name} did not report healthy")

        print("\nAll services started. Ctrl+C to stop.\n")

        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        print("\nStopping all services...")

    finally:
        for p, _ in procs:
            if p.poll() is None:
                p.send_signal(signal.SIGTERM)

        for p, _ in procs:
            try:
                p.wait(timeout=5)
            except subprocess.TimeoutExpired:
                p.kill()

        print("All services stopped.")


# =========================
# CLI
# =========================
if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else "up"

    if mode == "up":
        start_many(SERVICES.keys())
    elif mode in SERVICES:
        start_many([mode])
    else:
        print("Usage:")
        print("  python scripts/start_service.py up")
        print("  python scripts/start_service.py kv|tc")
