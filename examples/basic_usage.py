"""
privpass: Basic Usage Example

Walks one browsing session through the state machine: a challenge is
solved, tokens are issued and verified, and a later challenge on the same
site is answered with a token instead of another puzzle.
"""

import asyncio
import logging
import shutil
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from privpass import BadgeSignal, PrivacyTokenIssuer, SpendStateMachine, TokenStore
from privpass.adapters import FileKeyValueStore, MemoryCookieStore, RecordingTabs
from privpass.events import NavigationEvent, RequestEvent, ResponseEvent


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 50)
    print("  privpass: Challenge Bypass Tokens")
    print("=" * 50)

    # The issuer normally lives on the challenge provider's side
    issuer = PrivacyTokenIssuer()

    kv = FileKeyValueStore("./example-store")
    badge = BadgeSignal()
    badge.subscribe(lambda value: print(f"  [badge] {value}"))
    store = TokenStore(kv, signal=badge)
    tabs = RecordingTabs()
    machine = SpendStateMachine(store, kv, MemoryCookieStore(), tabs, issuer.commitment)

    # 1. The user solves a challenge; the solution request becomes an issuance request
    solution = "https://news.example/cdn-cgi/l/chk_captcha?id=42&g-recaptcha-response=solved"
    decision = machine.on_before_request(RequestEvent("req-1", 1, solution))
    issue = decision.issue
    print(f"\nSolution request cancelled: {decision.cancel}")
    print(f"Issuance request to {issue.url} with {len(issue.tokens)} blinded tokens")

    # 2. The host sends it; the issuer signs the batch and proves it used its committed key
    response = issuer.issue_batch(issue.body)
    stored = machine.complete_issuance(issue, 200, response)
    print(f"Stored {stored} verified tokens (tab sent to {tabs.updates[-1][1]})")

    # 3. Later, the site challenges again
    page = "https://news.example/story/1"
    challenge = ResponseEvent("req-2", 1, page, 403, [("CF-Chl-Bypass", "1")])
    asyncio.run(machine.on_headers_received(challenge))
    machine.on_navigation_committed(NavigationEvent(1, page, "link"))

    # 4. The retried request carries a redemption header instead
    headers = machine.on_before_send_headers(RequestEvent("req-3", 1, page))
    token_header = headers.get("challenge-bypass-token")
    print(f"\nRedemption header attached: {headers.modified}")
    print(f"Issuer accepts it: {issuer.verify(token_header, 'news.example', 'GET /story/1')}")
    print(f"Issuer accepts a replay: {issuer.verify(token_header, 'news.example', 'GET /story/1')}")
    print(f"Tokens left: {machine.token_count()}")

    # Cleanup
    shutil.rmtree("./example-store", ignore_errors=True)
    print("\nCleaned up example files.")


if __name__ == "__main__":
    main()
