"""执行引擎层（engine）。

统一入口：实时循环与回测都以 `XxxEngine.run() -> EngineResult` 形式对外提供能力，
并共用 `engine.signal_pipeline` 的决策步骤与 `engine.ledger` 的账本；
命令行入口由仓库根目录 `main.py` 统一承载。
"""
