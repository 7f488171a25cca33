import os
import subprocess

# ======================
# Global Config
# ======================

MYSQL_IMAGE = "mysql:oraclelinux9"
MYSQL_ROOT_PASSWORD = "1234"
MYSQL_DATABASE = "kv_db"
MYSQL_PORT = 33061

CONTAINER_NAME = "mysql-kv"
BASE_DATA_DIR = "./data"

# tables are created on first use by MySQLKVStore / MySQLTransactionLog


# ======================
# Utils
# ======================

def run(cmd: list[str]):
    print(">>", " ".join(cmd))
    subprocess.run(cmd, check=True)


def remove_container_if_exists(name: str):
    subprocess.run(
        ["docker", "rm", "-f", name],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


# ======================
# Main Logic
# ======================

def start_mysql():
    data_dir = os.path.join(BASE_DATA_DIR, CONTAINER_NAME)
    os.makedirs(data_dir, exist_ok=True)

    remove_container_if_exists(CONTAINER_NAME)

    run([
        "docker", "run", "-d",
        "--name", CONTAINER_NAME,
        "-e", f"MYSQL_ROOT_PASSWORD={MYSQL_ROOT_PASSWORD}",
        "-e", f"MYSQL_DATABASE={MYSQL_DATABASE}",
        "-p", f"{MYSQL_PORT}:3306",
        "-v", f"{os.path.abspath(data_dir)}:/var/lib/mysql",
        MYSQL_IMAGE
    ])

    print(f"{CONTAINER_NAME} started at localhost:{MYSQL_PORT} (database {MYSQL_DATABASE})")


if __name__ == "__main__":
    start_mysql()
