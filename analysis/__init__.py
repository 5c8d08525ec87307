"""回测报告与导出（analysis）。"""
