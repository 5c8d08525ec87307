"""策略、评分、风控与 sizing（algo）。"""
