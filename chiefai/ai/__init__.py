"""
Language model access

Import the factory directly so langchain is only loaded when it is used:
    from chiefai.ai.llm_factory import LLMFactory, LangChainTextGenerator
"""
