"""Agent chat runtime: grounded replies for user-configured AI agents.

Architecture Overview
=====================

Each chat request runs a **LangGraph** pipeline of fail-soft stages that
collect context, then one call to the main model:

1. **retrieval**  - Qdrant vector search over the agent's indexed knowledge
   (sentence-transformers embeddings), falling back to fetching up to three
   pending knowledge URLs.
2. **mcp_tools**  - tool discovery on each configured tool server (cached
   for an hour) and a bounded, model-driven selection loop (at most three
   picks per server).
3. **api_tools**  - statically configured HTTP tools, called when a cheap
   relevance heuristic says they may help.  GraphQL queries and OpenAPI
   bodies are written by the fast model.
4. **availability** - bookable slots from the owner's weekly windows.  Google
   Calendar busy times only filter the booking card, never the model's view.
5. **generate**   - the system instruction is assembled in a fixed order and
   sent with the last 10 turns to Claude, optionally with web search.

Key Design Decisions
--------------------
- **LLM**: Claude via ``langchain-anthropic``; a fast model does tool
  selection and request synthesis, the main model writes the reply.
- **Fail-soft stages**: a broken collaborator costs the reply some
  grounding, never the request.  Only the final generation can fail it.
- **Pure heuristics**: relevance gates and slot computation are pure
  functions, tested without any network.
- **Dual Interface**: FastAPI server (production) + CLI chat loop.

Package Structure
-----------------
- ``agent_runtime/agent.py``    - LangGraph pipeline and chat service
- ``agent_runtime/config.py``   - Configuration from env vars / SSM
- ``agent_runtime/context.py``  - System instruction assembly
- ``agent_runtime/llm.py``      - Model builders and reply helpers
- ``agent_runtime/models.py``   - Pydantic records
- ``agent_runtime/prompts.py``  - Prompt and section templates
- ``agent_runtime/server.py``   - FastAPI application
- ``agent_runtime/main.py``     - CLI chat interface
- ``agent_runtime/services/``   - Store, HTTP clients, cache, metrics, retrieval
- ``agent_runtime/tools/``      - Tool selection, HTTP tools, relevance, scheduling
- ``agent_runtime/api/``        - FastAPI routes and Pydantic schemas
"""
