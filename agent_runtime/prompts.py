"""Prompt templates for the chat pipeline.

Internal prompts (tool selection, request synthesis, server summaries) go
to the fast model.  The section templates are stitched into the agent's
system instruction by :mod:`agent_runtime.context`.
"""

# ── Tool selection ───────────────────────────────────────────────────

TOOL_SELECTION_PROMPT = """You are helping determine which MCP tool to call based on a user's question.

Available tools from "{server_name}":
{catalogue}

User's question: "{message}"

{previous_block}
Respond with ONLY a JSON object (no markdown, no explanation) in this exact format:
{{"toolName": "tool-name-here", "args": {{"param1": "value1", "param2": "value2"}}}}

If no tool is appropriate or needed, respond with: {{"toolName": null, "args": {{}}}}

Choose the most relevant tool and fill in appropriate parameter values based on the user's question."""

PREVIOUS_RESULTS_BLOCK = """Previous tool results:
{previous_results}

Based on these results, determine if another tool should be called.
"""

SERVER_SUMMARY_PROMPT = (
    "What is {server_name} MCP server? How do I use its tools? "
    "What parameters do its main tools expect? "
    "Keep the response brief and technical."
)

# ── Generic API request synthesis ────────────────────────────────────

GRAPHQL_QUERY_PROMPT = """Generate a GraphQL query to answer this question: "{message}"

{schema_block}
RULES:
1. Return ONLY the GraphQL query, no explanation
2. Do NOT wrap in markdown code blocks
3. Make it a valid GraphQL query
4. Use the schema information above to create an accurate query
5. Include relevant fields that would answer the user's question

Example format:
{{ domains(first: 3, orderBy: registeredAt, orderDirection: desc) {{ id name registeredAt }} }}"""

OPENAPI_BODY_PROMPT = """Generate a JSON request body for this API to answer: "{message}"

{schema_block}
RULES:
1. Return ONLY valid JSON, no explanation
2. Do NOT wrap in markdown code blocks
3. Include only necessary fields"""

# ── Instruction sections ─────────────────────────────────────────────

DEFAULT_PERSONALITY = "You are a helpful AI assistant named {name}."

MCP_RESULTS_SECTION = """
## RETRIEVED INFORMATION (USE THIS DATA - DO NOT OUTPUT CODE)

The following information was ALREADY retrieved from MCP servers on behalf of the user.
Your job is to PRESENT this information in a helpful, formatted way.

ABSOLUTE RULES:
1. DO NOT write Python, JavaScript, or ANY code showing how to call these tools
2. DO NOT explain how to use the MCP API
3. DO NOT show import statements or function calls
4. JUST use the retrieved data to answer the user's question directly
5. Format the information nicely with markdown

{results}

---END OF RETRIEVED DATA---

"""

API_RESULTS_SECTION = """
## API RESULTS (USE THIS DATA - DO NOT OUTPUT CODE)

The following data was ALREADY retrieved from APIs on behalf of the user.
Your job is to PRESENT this information in a helpful, formatted way.

ABSOLUTE RULES:
1. DO NOT write code showing how to query these APIs
2. DO NOT show GraphQL queries or fetch examples
3. JUST use the retrieved data to answer the user's question directly
4. Format the information nicely (use markdown tables, lists, etc.)

{results}

---END OF API DATA---

"""

KNOWLEDGE_INTRO = (
    "\n\nYou have access to the following knowledge sources. "
    "Use this information to help answer questions when relevant:"
)

API_TOOLS_HEADER = "\n\n## Available API Tools:\n"

TOOL_DATA_REMINDER = (
    "\n\n[REMINDER: Answer using the RETRIEVED INFORMATION and API RESULTS at the top. "
    "Present the data directly - DO NOT output code, queries or API calls.]"
)

# ── Scheduling ───────────────────────────────────────────────────────

SCHEDULING_CAPABILITY = """

## Scheduling Capability
You can help users schedule meetings with your creator. When users ask about scheduling, meeting times, or availability:
- Be helpful and proactive
- Present the available times clearly when you have them
- Tell users they can select a time from the interactive booking card that appears below your message
- Ask clarifying questions if needed (preferred time of day, meeting type, etc.)
- DO NOT direct users to external URLs - booking happens in this chat
"""

SCHEDULING_CONTEXT = """
## SCHEDULING INFORMATION

You can help users schedule meetings with your creator.{availability}

{session_lines}

IMPORTANT: The user can book DIRECTLY in this chat. A booking card will appear below your message with the accurate available times.
When helping users schedule:
1. Present the general availability times above
2. Ask what type of meeting they'd like (free or paid, if both available)
3. Tell them to select a time from the interactive booking card that will appear
4. The booking card handles collecting their email and completing the reservation

DO NOT direct users to an external URL - everything is handled in this chat interface.
"""

SCHEDULING_AVAILABILITY = """ Here are the general availability windows (times in {timezone}):

{slot_lines}

Note: The interactive booking card below will show the most accurate real-time availability."""

SCHEDULING_NO_AVAILABILITY = """

(No availability windows configured for the next 7 days)"""

SCHEDULING_NOT_ENABLED = """
## SCHEDULING NOTE

My creator hasn't enabled their public scheduling page yet. Please ask them directly about their availability or suggest they enable the scheduling feature in their settings.
"""

FALLBACK_REPLY = "I'm sorry, I couldn't generate a response."
