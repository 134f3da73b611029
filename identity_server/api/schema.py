# identity_server/api/schema.py
"""
GraphQL SDL of the public API exported as a Python string named type_defs.
The user types themselves live in the domain schema (config/domain.graphql).
"""

type_defs = """
schema {
  query: Query
  mutation: Mutation
}

type Query {
  ping: String!
  me: Me
}

type Me {
  id: ID!
  type: String!
  username: String!
}

type AuthPayload {
  accessToken: String!
  tokenType: String!
  expiresIn: Int!
}

type WorkflowPayload {
  success: Boolean!
  status: String!
  violations: [String!]!
}

type Mutation {
  login(type: String!, username: String!, password: String!): AuthPayload

  emailChangeRequest(email: String!): WorkflowPayload!
  emailChangeConfirm(token: String!): WorkflowPayload!
}
"""
