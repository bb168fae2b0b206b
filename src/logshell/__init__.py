"""logshell - 把外部进程的输出转换为结构化 JSON 日志记录。

每一行 stdout/stderr 成为一条带时间戳的记录，可选地在进程运行期间
异步转发到远程 HTTP 收集端。

环境变量:
    LSH_HTTP_URL: 默认的日志收集端点 URL
    LSH_HTTP_ONLY: 只发送到 HTTP 端点 (默认 false)
    LSH_HTTP_TIMEOUT: 单次投递超时 (默认 30s)

用法:
    logshell run --http http://localhost:8080/logs -- make test
"""

__version__ = "0.1.0"

from .app import main
from .errors import ProcessExitError, ProcessStartError, ShellConfigError, ShellError
from .shared.records import Level, LogRecord, RecordFormat, RecordLogger
from .shell import Shell, ShellSpec

__all__ = [
    "__version__",
    "Level",
    "LogRecord",
    "ProcessExitError",
    "ProcessStartError",
    "RecordFormat",
    "RecordLogger",
    "Shell",
    "ShellConfigError",
    "ShellError",
    "ShellSpec",
    "main",
]
