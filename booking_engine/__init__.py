"""
booking_engine - 酒店客房库存与预订确认引擎

- models: ORM 对象与 Pydantic 模式
- domain: 纯函数定价引擎与预订生命周期
- engine: 状态机、补偿栈、事件总线
- services: 库存存储、可用性查询、草稿、确认、取消、状态
- notification: 通知渠道与预订通知处理器
"""

__version__ = "0.1.0"
