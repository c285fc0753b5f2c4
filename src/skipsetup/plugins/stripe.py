"""Stripe payments plugin.

Adds a Stripe client helper, a tRPC payments router and a React hook, wires
the router into ``src/server/api/root.ts`` and appends the Stripe keys to
``.env.example``. If no root router exists yet, one is created with the
payments router already registered.
"""

from __future__ import annotations

import re
import textwrap

from skipsetup.context import ActivationContext
from skipsetup.plugin.hookspecs import hookimpl
from skipsetup.types import FileOperation, PatchOperation, PluginDescriptor

ROOT_ROUTER = "src/server/api/root.ts"
ROUTER_REGISTRATION = "payments: paymentsRouter"
ROUTER_IMPORT = "import { paymentsRouter } from './routers/payments';"
APP_ROUTER_ANCHOR = "export const appRouter = createTRPCRouter({"

DEPENDENCIES = (
    "stripe@^16.12.0",
    "@stripe/react-stripe-js@^2.8.1",
    "@tanstack/react-query@^5.90.5",
)

STRIPE_UTIL = textwrap.dedent("""\
    import Stripe from 'stripe';

    const stripe = new Stripe(process.env.STRIPE_KEY || '', {
      apiVersion: '2024-06-20',
    });

    export default stripe;

    export const verifyWebhook = (sig: string | string[] | undefined, payload: Buffer) => {
      if (!sig || !process.env.STRIPE_WEBHOOK_SECRET) throw new Error('Missing signature or secret');
      return stripe.webhooks.constructEvent(payload, sig as string, process.env.STRIPE_WEBHOOK_SECRET);
    };
""")

PAYMENTS_ROUTER = textwrap.dedent("""\
    import { z } from 'zod';
    import { createTRPCRouter, publicProcedure, protectedProcedure } from '~/server/api/trpc';
    import stripe, { verifyWebhook } from '~/utils/stripe';

    export const paymentsRouter = createTRPCRouter({
      createSession: protectedProcedure
        .input(z.object({ priceId: z.string() }))
        .mutation(async ({ input, ctx }) => {
          const session = await stripe.checkout.sessions.create({
            mode: 'payment',
            payment_method_types: ['card'],
            line_items: [{ price: input.priceId, quantity: 1 }],
            success_url: `${process.env.NEXT_PUBLIC_URL}/success`,
            cancel_url: `${process.env.NEXT_PUBLIC_URL}/cancel`,
            metadata: { userId: ctx.user?.id },
          });
          return { url: session.url };
        }),
      verifyWebhook: publicProcedure
        .input(z.object({ sig: z.string(), payload: z.string() }))
        .mutation(async ({ input }) => {
          return verifyWebhook(input.sig, Buffer.from(input.payload, 'utf8'));
        }),
    });
""")

PAYMENTS_HOOK = textwrap.dedent("""\
    import { api } from '~/utils/api';

    export function usePayments() {
      const createSession = api.payments.createSession.useMutation();
      const verifyWebhook = api.payments.verifyWebhook.useMutation();

      return { createSession, verifyWebhook };
    }
""")

ROOT_ROUTER_CONTENT = textwrap.dedent(f"""\
    import {{ createTRPCRouter }} from '~/server/api/trpc';
    {ROUTER_IMPORT}

    {APP_ROUTER_ANCHOR}
      {ROUTER_REGISTRATION},
    }});

    export type AppRouter = typeof appRouter;
""")

ENV_BLOCK = textwrap.dedent("""\

    # Stripe Plugin
    STRIPE_KEY=sk_test_...
    STRIPE_WEBHOOK_SECRET=whsec_...
    NEXT_PUBLIC_STRIPE_PUBLISHABLE_KEY=pk_test_...
    NEXT_PUBLIC_URL=http://localhost:3000
""")


def activate(ctx: ActivationContext) -> None:
    ctx.write_many(
        [
            FileOperation("src/utils/stripe.ts", STRIPE_UTIL),
            FileOperation("src/server/api/routers/payments.ts", PAYMENTS_ROUTER),
            FileOperation("src/hooks/usePayments.ts", PAYMENTS_HOOK),
            FileOperation(".env.example", ENV_BLOCK, "append_if_missing"),
        ]
    )

    if not ctx.exists(ROOT_ROUTER):
        ctx.write(ROOT_ROUTER, ROOT_ROUTER_CONTENT)
        return

    ctx.patch(
        PatchOperation(
            target_path=ROOT_ROUTER,
            anchor=re.compile(r"\A"),
            insertion=ROUTER_IMPORT + "\n",
            idempotency_token=ROUTER_IMPORT,
            position="before",
        )
    )
    ctx.patch(
        PatchOperation(
            target_path=ROOT_ROUTER,
            anchor=APP_ROUTER_ANCHOR,
            insertion=f"\n  {ROUTER_REGISTRATION},",
            idempotency_token=ROUTER_REGISTRATION,
        )
    )


class StripePlugin:
    @hookimpl
    def skipsetup_plugins(self) -> list[PluginDescriptor]:
        return [
            PluginDescriptor(
                id="stripe",
                activate=activate,
                dependencies=DEPENDENCIES,
                description="Stripe checkout and webhooks over tRPC",
            )
        ]
