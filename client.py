"""
Smoke-test client for the provenance store MCP server using HTTP/JSON-RPC.

This client connects to the MCP server using the streamable-http transport,
which uses standard HTTP requests with JSON-RPC protocol.
"""
import json
import os
import sys

import requests

# MCP server endpoint
MCP_ENDPOINT = os.getenv("PROVENANCE_MCP_ENDPOINT", "http://127.0.0.1:8000/mcp")

HEADERS = {
    "Content-Type": "application/json",
    # Streamable-http requires Accept header to include both content types
    "Accept": "application/json, text/event-stream",
}


def parse_sse_response(response_text: str) -> dict:
    """Parse Server-Sent Events (SSE) response format."""
    # SSE format: "event: message\r\ndata: {json}\r\n\r\n"
    lines = response_text.replace('\r\n', '\n').split('\n')
    for line in lines:
        line = line.strip()
        if line.startswith('data: '):
            try:
                return json.loads(line[6:])
            except json.JSONDecodeError:
                continue
    raise ValueError("No valid JSON data found in SSE response")


def _post(request: dict, timeout: int) -> dict:
    response = requests.post(MCP_ENDPOINT, json=request, headers=HEADERS, timeout=timeout)
    response.raise_for_status()
    if 'text/event-stream' in response.headers.get('content-type', ''):
        return parse_sse_response(response.text)
    return response.json()


def list_available_tools():
    """List all available tools from the MCP server."""
    request = {"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}}
    try:
        result = _post(request, timeout=10)
    except requests.RequestException as e:
        print(f"Error listing tools: {e}")
        return []
    except ValueError as e:
        print(f"Error parsing response: {e}")
        return []

    if "result" in result and "tools" in result["result"]:
        tools = result["result"]["tools"]
        print(f"Available tools ({len(tools)}):")
        for tool in tools:
            description = (tool.get('description') or 'No description').strip().splitlines()[0]
            print(f"  - {tool.get('name', 'unknown')}: {description}")
        return tools

    print("Unexpected response format:")
    print(json.dumps(result, indent=2))
    return []


def call_tool(tool_name: str, arguments: dict):
    """Call an MCP tool with the given arguments."""
    request = {
        "jsonrpc": "2.0",
        "id": 2,
        "method": "tools/call",
        "params": {"name": tool_name, "arguments": arguments},
    }

    print(f"\nCalling tool '{tool_name}' with arguments:")
    print(json.dumps(arguments, indent=2))
    try:
        result = _post(request, timeout=60)
    except requests.RequestException as e:
        print(f"\nRequest error: {e}")
        if getattr(e, 'response', None) is not None:
            print(f"Response text: {e.response.text[:500]}")
        return None
    except ValueError as e:
        print(f"\nError parsing response: {e}")
        return None

    if "error" in result:
        print("\nError from server:")
        print(json.dumps(result["error"], indent=2))
        return None

    if "result" in result:
        print("\nResponse from server:")
        print(json.dumps(result["result"], indent=2))
        return result["result"]

    print("\nUnexpected response format:")
    print(json.dumps(result, indent=2))
    return None


def run_smoke_test():
    """List tools, then exercise storage info, session listing and sync."""
    print("=" * 60)
    print("Provenance Store MCP Test Client")
    print("=" * 60)

    print("\n1. Listing available tools...")
    tools = list_available_tools()
    if not tools:
        print("\nNo tools available. Make sure the server is running.")
        return False

    identity = {"display_name": "Smoke Test", "user_id": "smoke-test"}

    print("\n2. Storage info...")
    info = call_tool("get_storage_info", identity)

    print("\n3. Listing sessions...")
    sessions = call_tool("list_sessions", identity)

    print("\n4. Syncing user data to shared storage...")
    call_tool("sync_user_data", identity)

    ok = info is not None and sessions is not None
    print("\n" + "=" * 60)
    print("Test completed successfully!" if ok else "Test failed. Check the error messages above.")
    print("=" * 60)
    return ok


if __name__ == "__main__":
    try:
        sys.exit(0 if run_smoke_test() else 1)
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user.")
        sys.exit(1)
