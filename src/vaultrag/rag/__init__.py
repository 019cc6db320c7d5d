from vaultrag.rag.assembler import AssembledPrompt, PromptAssembler, context_size
from vaultrag.rag.chat import ChatMessage, ChatSession
from vaultrag.rag.fuzzy import sequence_matching_search
from vaultrag.rag.retriever import Retriever, knn_search, rerank, tokenize_query

__all__ = [
    "AssembledPrompt",
    "ChatMessage",
    "ChatSession",
    "PromptAssembler",
    "Retriever",
    "context_size",
    "knn_search",
    "rerank",
    "sequence_matching_search",
    "tokenize_query",
]
