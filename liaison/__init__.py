"""
Liaison: 長時間タスクをサブエージェントに委譲するMCPサーバー。
"""
