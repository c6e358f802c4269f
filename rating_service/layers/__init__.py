"""
数据流分层架构
  Layer 1 – Acquisition  : 市场数据获取（Alpha Vantage）
  Layer 2 – Cache        : 两级缓存（内存 → 文件）
  Layer 3 – Processing   : 响应解析与校验
  Layer 4 – Analysis     : 价格统计指标
"""
