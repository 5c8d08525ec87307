"""共享模型、配置与工具（shared）。"""
