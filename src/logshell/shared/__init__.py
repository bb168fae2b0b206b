"""logshell 共享模块。

- records: 日志记录模型、记录 logger 与本地写入端
- transport: 成帧、HTTP 投递与 Dispatch Writer
"""
