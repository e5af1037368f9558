"""
测试用配置：账户、服务名、固定日期等。

仅在此处维护，conftest 及各 test_*.py 均从此导入。
- 单元测试：通过 httpx.MockTransport 模拟又拍云，不访问网络。
- 集成测试：需设置 UPYUN_OPERATOR / UPYUN_PASSWORD / UPYUN_BUCKET 环境变量，否则跳过。
"""

import os

# ---------- 账户 ----------
UPYUN_OPERATOR = "tester"
UPYUN_PASSWORD = "secret123"
UPYUN_BUCKET = "demo-bucket"
UPYUN_HOST = "cdn.example.com"
UPYUN_API_SECRET = "form-api-secret"
UPYUN_DOMAIN = "v0.api.upyun.com"
UPYUN_ENDPOINT = f"http://{UPYUN_DOMAIN}"

# ---------- 签名 ----------
# 固定签名日期与时间戳（两者对应同一时刻），保证签名可复现
FIXED_DATE = "Wed, 29 Oct 2014 02:26:58 GMT"
FIXED_NOW = 1414549618.0

# ---------- 集成测试 ----------
INTEGRATION_ENABLED = all(os.getenv(k) for k in ("UPYUN_OPERATOR", "UPYUN_PASSWORD", "UPYUN_BUCKET"))
# 集成测试在该目录下创建并清理临时文件
INTEGRATION_PREFIX = "/upyunapi-pytest"
