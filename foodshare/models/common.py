"""通用数据模型：驼峰命名基类与统一响应。"""
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """线上字段使用 camelCase，同时接受 snake_case 入参。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def success_response(message: str, data: Any = None) -> dict:
    """构建成功响应 {success, message, data?}"""
    body: dict = {"success": True, "message": message}
    if data is not None:
        body["data"] = data.to_wire() if isinstance(data, CamelModel) else data
    return body
