"""Test fixtures for reefgen tests.

This module provides sample OpenAPI documents used across the test suite.
"""

import copy

# Minimal OpenAPI 3.0 document for basic testing
MINIMAL_OPENAPI_SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Minimal API', 'version': '1.0.0'},
    'paths': {},
}

# Petstore-like API with models, servers and several operations
PETSTORE_SPEC = {
    'openapi': '3.0.3',
    'info': {
        'title': 'Petstore',
        'version': '1.0.0',
        'description': 'A sample Petstore API for testing',
    },
    'servers': [
        {'url': 'https://petstore.example.com/v1', 'description': 'Production server'},
        {
            'url': 'https://{region}.petstore.example.com/v1',
            'description': 'Regional',
            'variables': {'region': {'default': 'eu'}},
        },
    ],
    'paths': {
        '/pets': {
            'get': {
                'operationId': 'listPets',
                'summary': 'List all pets',
                'parameters': [
                    {
                        'name': 'limit',
                        'in': 'query',
                        'required': False,
                        'schema': {'type': 'integer', 'format': 'int32'},
                    },
                    {
                        'name': 'tags',
                        'in': 'query',
                        'style': 'form',
                        'explode': False,
                        'schema': {'type': 'array', 'items': {'type': 'string'}},
                    },
                ],
                'responses': {
                    '200': {
                        'description': 'A list of pets',
                        'content': {
                            'application/json': {
                                'schema': {
                                    'type': 'array',
                                    'items': {'$ref': '#/components/schemas/Pet'},
                                }
                            }
                        },
                    },
                    'default': {
                        'description': 'Unexpected error',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Error'}
                            }
                        },
                    },
                },
            },
            'post': {
                'operationId': 'createPet',
                'summary': 'Create a pet',
                'requestBody': {
                    'required': True,
                    'content': {
                        'application/json': {
                            'schema': {'$ref': '#/components/schemas/NewPet'}
                        }
                    },
                },
                'responses': {
                    '201': {
                        'description': 'Created',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Pet'}
                            }
                        },
                    }
                },
            },
        },
        '/pets/{petId}': {
            'parameters': [
                {
                    'name': 'petId',
                    'in': 'path',
                    'required': True,
                    'schema': {'type': 'string'},
                }
            ],
            'get': {
                'operationId': 'showPetById',
                'summary': 'Info for a specific pet',
                'responses': {
                    '200': {
                        'description': 'The pet',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Pet'}
                            }
                        },
                    },
                    '404': {
                        'description': 'Not found',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Error'}
                            }
                        },
                    },
                },
            },
            'delete': {
                'operationId': 'deletePet',
                'deprecated': True,
                'responses': {'204': {'description': 'Deleted'}},
            },
        },
    },
    'components': {
        'schemas': {
            'Pet': {
                'type': 'object',
                'required': ['id', 'name'],
                'properties': {
                    'id': {'type': 'integer', 'format': 'int64'},
                    'name': {'type': 'string'},
                    'tag': {'type': 'string'},
                    'status': {'$ref': '#/components/schemas/Status'},
                },
            },
            'NewPet': {
                'type': 'object',
                'required': ['name'],
                'properties': {
                    'name': {'type': 'string'},
                    'tag': {'type': 'string'},
                },
            },
            'Status': {
                'type': 'string',
                'enum': ['available', 'pending', 'sold'],
            },
            'Error': {
                'type': 'object',
                'required': ['code', 'message'],
                'properties': {
                    'code': {'type': 'integer', 'format': 'int32'},
                    'message': {'type': 'string'},
                },
            },
        }
    },
}

# Self-referencing and mutually recursive schemas
CYCLES_SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Trees', 'version': '1.0.0'},
    'paths': {
        '/tree': {
            'get': {
                'operationId': 'getTree',
                'responses': {
                    '200': {
                        'description': 'The tree',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Node'}
                            }
                        },
                    }
                },
            }
        },
        '/ping-pong': {
            'get': {
                'operationId': 'getPing',
                'responses': {
                    '200': {
                        'description': 'A ping',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Ping'}
                            }
                        },
                    }
                },
            }
        },
    },
    'components': {
        'schemas': {
            'Node': {
                'type': 'object',
                'required': ['value'],
                'properties': {
                    'value': {'type': 'string'},
                    'children': {
                        'type': 'array',
                        'items': {'$ref': '#/components/schemas/Node'},
                    },
                },
            },
            'Ping': {
                'type': 'object',
                'properties': {'pong': {'$ref': '#/components/schemas/Pong'}},
            },
            'Pong': {
                'type': 'object',
                'properties': {'ping': {'$ref': '#/components/schemas/Ping'}},
            },
        }
    },
}

# allOf merging, including a conflicting merge
COMPOSITION_SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Composition', 'version': '1.0.0'},
    'paths': {
        '/dogs': {
            'get': {
                'operationId': 'getDog',
                'responses': {
                    '200': {
                        'description': 'A dog',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Dog'}
                            }
                        },
                    }
                },
            }
        }
    },
    'components': {
        'schemas': {
            'Base': {
                'type': 'object',
                'required': ['id'],
                'properties': {'id': {'type': 'string'}},
            },
            'Dog': {
                'allOf': [
                    {'$ref': '#/components/schemas/Base'},
                    {
                        'type': 'object',
                        'required': ['barks'],
                        'properties': {'barks': {'type': 'boolean'}},
                    },
                ]
            },
            'Conflict': {
                'allOf': [
                    {'type': 'object', 'properties': {'x': {'type': 'string'}}},
                    {'type': 'object', 'properties': {'x': {'type': 'integer'}}},
                ]
            },
        }
    },
}

# oneOf unions with and without a discriminator
UNIONS_SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Zoo', 'version': '2.0.0'},
    'paths': {
        '/pets': {
            'get': {
                'operationId': 'getPet',
                'responses': {
                    '200': {
                        'description': 'A pet',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Pet'}
                            }
                        },
                    }
                },
            }
        },
        '/animals': {
            'get': {
                'operationId': 'getAnimal',
                'responses': {
                    '200': {
                        'description': 'An animal',
                        'content': {
                            'application/json': {
                                'schema': {'$ref': '#/components/schemas/Animal'}
                            }
                        },
                    }
                },
            }
        },
    },
    'components': {
        'schemas': {
            'Cat': {
                'type': 'object',
                'required': ['kind', 'name', 'meows'],
                'properties': {
                    'kind': {'type': 'string'},
                    'name': {'type': 'string'},
                    'meows': {'type': 'boolean'},
                },
            },
            'Dog': {
                'type': 'object',
                'required': ['kind', 'name', 'barks'],
                'properties': {
                    'kind': {'type': 'string'},
                    'name': {'type': 'string'},
                    'barks': {'type': 'boolean'},
                },
            },
            'Pet': {
                'oneOf': [
                    {'$ref': '#/components/schemas/Cat'},
                    {'$ref': '#/components/schemas/Dog'},
                ]
            },
            'Animal': {
                'oneOf': [
                    {'$ref': '#/components/schemas/Cat'},
                    {'$ref': '#/components/schemas/Dog'},
                ],
                'discriminator': {
                    'propertyName': 'kind',
                    'mapping': {'cat': 'Cat', 'dog': '#/components/schemas/Dog'},
                },
            },
        }
    },
}

# Parameters in every location, with several styles
PARAMETERS_SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Search', 'version': '1.0.0'},
    'servers': [{'url': 'https://search.example.com'}],
    'paths': {
        '/items/{itemId}': {
            'get': {
                'operationId': 'getItem',
                'parameters': [
                    {
                        'name': 'itemId',
                        'in': 'path',
                        'required': True,
                        'schema': {'type': 'string'},
                    },
                    {
                        'name': 'ids',
                        'in': 'query',
                        'schema': {'type': 'array', 'items': {'type': 'integer'}},
                    },
                    {
                        'name': 'filter',
                        'in': 'query',
                        'style': 'deepObject',
                        'explode': True,
                        'schema': {
                            'type': 'object',
                            'properties': {'color': {'type': 'string'}},
                        },
                    },
                    {
                        'name': 'X-Request-Id',
                        'in': 'header',
                        'required': True,
                        'schema': {'type': 'string'},
                    },
                    {
                        'name': 'session',
                        'in': 'cookie',
                        'schema': {'type': 'string'},
                    },
                ],
                'responses': {
                    '200': {
                        'description': 'The item',
                        'content': {'text/plain': {'schema': {'type': 'string'}}},
                    },
                    '4XX': {
                        'description': 'Client error',
                        'content': {
                            'application/json': {
                                'schema': {
                                    'type': 'object',
                                    'properties': {'detail': {'type': 'string'}},
                                }
                            }
                        },
                    },
                },
            }
        },
        '/reports': {
            'get': {
                'operationId': 'listReports',
                'parameters': [
                    {
                        'name': 'sort',
                        'in': 'query',
                        'style': 'deepObject',
                        'explode': False,
                        'schema': {'type': 'object'},
                    }
                ],
                'responses': {'204': {'description': 'Nothing'}},
            }
        },
    },
}


RESERVED_NAMES_SPEC = {
    'openapi': '3.0.3',
    'info': {'title': 'Reserved Names', 'version': '1.0.0'},
    'paths': {},
    'components': {
        'schemas': {
            'Record': {
                'type': 'object',
                'properties': {
                    '_from': {'type': 'string'},
                    '_class': {'type': 'integer'},
                },
            },
        }
    },
}


def spec_copy(spec: dict) -> dict:
    """Return a deep copy of a fixture that a test may modify."""
    return copy.deepcopy(spec)
