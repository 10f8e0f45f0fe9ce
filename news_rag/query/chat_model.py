"""
Chat Model Client

Thin wrapper around LangChain's ChatOllama that turns a stored conversation
plus a final prompt into one assistant reply.
"""

import logging
from typing import List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

from ..models import ROLE_USER, Turn

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful news assistant. Answer based ONLY on context. "
    "Do NOT start your answer with \"Based on the context provided\" or similar phrases. "
    "Just answer the question directly."
)


class OllamaChatModel:
    """Generates answers with an Ollama chat model."""

    def __init__(
        self,
        model: str = "llama3.1:latest",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.7,
        system_prompt: str = SYSTEM_PROMPT
    ):
        """
        Initialize the chat model.

        Args:
            model: Ollama model name for answer generation
            base_url: Base URL for Ollama service
            temperature: LLM temperature (higher = more creative)
            system_prompt: Instruction sent ahead of every conversation
        """
        self.model = model
        self.system_prompt = system_prompt
        self.llm = ChatOllama(
            model=model,
            temperature=temperature,
            base_url=base_url
        )

    def build_messages(self, history: Sequence[Turn], prompt: str) -> List[BaseMessage]:
        """
        Map prior turns to chat roles and append the prompt as the last user turn.
        """
        messages: List[BaseMessage] = [SystemMessage(content=self.system_prompt)]
        for turn in history:
            if turn.role == ROLE_USER:
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
        messages.append(HumanMessage(content=prompt))
        return messages

    async def generate(self, history: Sequence[Turn], prompt: str) -> str:
        """
        Generate a reply to ``prompt`` given the earlier conversation.

        Raises:
            Exception: Whatever the underlying client raises
        """
        response = await self.llm.ainvoke(self.build_messages(history, prompt))

        # Extract content from response
        if hasattr(response, 'content'):
            return response.content
        return str(response)
