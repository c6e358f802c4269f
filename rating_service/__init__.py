"""
Flash HedgeFund 评级服务
多风格 AI 投资代理对股票进行并发评级

架构分层：
  数据获取层 (Acquisition)  → 从 Alpha Vantage 拉取日线 / 批量报价
  缓存层     (Cache)        → 内存 / 文件两级缓存（统一 TTL）
  处理层     (Processing)   → 原始响应解析为标准 StockContext
  分析层     (Analysis)     → 价格序列统计指标
  代理层     (Agents)       → 各投资风格的评级代理
"""

__version__ = "1.0.0"
